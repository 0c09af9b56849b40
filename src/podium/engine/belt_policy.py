"""Belt challenge state machine.

Expiry, inactivity and mandatory defense are evaluated lazily against the
``now`` the caller passes in; there is no background sweep that has to run
first. Every function returns a plan describing the writes and leaves
persistence to the caller.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from podium.engine.coin_economy import PayoutSplit, belt_entry_fee, compute_payout_split
from podium.engine.errors import (
    ChallengeAlreadyDeclinedError,
    EligibilityError,
    StateConflictError,
    ValidationError,
)
from podium.engine.records import (
    BeltRecord,
    BeltRules,
    BeltStatus,
    ChallengeRecord,
    ChallengerAccount,
    ChallengeStatus,
    EligibilityReason,
)

logger = logging.getLogger(__name__)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC (some drivers drop the tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def resolve_challenge_status(challenge: ChallengeRecord, now: datetime) -> ChallengeStatus:
    """Effective status of a challenge at ``now``. A pending challenge past expires_at is EXPIRED."""
    status = ChallengeStatus(challenge.status)
    if status == ChallengeStatus.PENDING and ensure_utc(now) > ensure_utc(challenge.expires_at):
        return ChallengeStatus.EXPIRED
    return status


def challenge_expires_at(created_at: datetime, rules: BeltRules) -> datetime:
    return ensure_utc(created_at) + timedelta(days=rules.challenge_expiry_days)


def _since_last_defense(belt: BeltRecord, now: datetime) -> timedelta | None:
    last = ensure_utc(belt.last_defense)
    if last is None:
        return None
    return ensure_utc(now) - last


def in_grace_period(belt: BeltRecord, rules: BeltRules, now: datetime) -> bool:
    became = ensure_utc(belt.became_holder_at)
    if became is None:
        return False
    return ensure_utc(now) - became < timedelta(days=rules.grace_period_days)


def defense_overdue(belt: BeltRecord, rules: BeltRules, now: datetime) -> bool:
    """True once the holder has gone longer than mandatory_defense_days without defending."""
    elapsed = _since_last_defense(belt, now)
    return elapsed is not None and elapsed > timedelta(days=rules.mandatory_defense_days)


def is_belt_inactive(belt: BeltRecord, rules: BeltRules, now: datetime, pending_challenges: int) -> bool:
    """A held belt nobody has challenged for longer than inactivity_days."""
    if belt.holder_id is None or belt.is_staked or pending_challenges > 0:
        return False
    elapsed = _since_last_defense(belt, now)
    return elapsed is not None and elapsed > timedelta(days=rules.inactivity_days)


def free_challenges_remaining(account: ChallengerAccount, rules: BeltRules, now: datetime) -> int:
    """Free challenges left in the rolling window."""
    window_start = ensure_utc(now) - timedelta(days=rules.free_challenge_window_days)
    used = sum(1 for t in account.free_consumed_at if ensure_utc(t) > window_start)
    return max(rules.free_challenges_per_week - used, 0)


# ── Creation ─────────────────────────────────────────────────


@dataclass(frozen=True)
class ChallengeEligibility:
    entry_fee: int
    coin_reward: int
    uses_free_challenge: bool
    expires_at: datetime
    # Belt was inactive, so grace, cooldown and the coin gate did not apply
    open_challenge: bool = False


def check_challenge_eligibility(
    belt: BeltRecord,
    challenger: ChallengerAccount,
    rules: BeltRules,
    now: datetime,
    pending_challenges: int = 0,
) -> ChallengeEligibility:
    """Run the creation checks in order. Raises EligibilityError with the first failing reason."""
    now = ensure_utc(now)
    if belt.holder_id is None or belt.status == BeltStatus.VACANT:
        raise EligibilityError(EligibilityReason.NO_HOLDER, "Belt has no holder to challenge")
    if challenger.user_id == belt.holder_id:
        raise EligibilityError(EligibilityReason.SELF_CHALLENGE, "You cannot challenge your own belt")
    if belt.is_staked or belt.status == BeltStatus.STAKED:
        raise EligibilityError(EligibilityReason.BELT_STAKED, "Belt is staked in an accepted challenge")
    if any(resolve_challenge_status(c, now) == ChallengeStatus.PENDING for c in challenger.belt_challenges):
        raise EligibilityError(
            EligibilityReason.DUPLICATE_PENDING, "You already have a pending challenge for this belt"
        )

    open_challenge = belt.status == BeltStatus.INACTIVE or is_belt_inactive(belt, rules, now, pending_challenges)
    expires_at = challenge_expires_at(now, rules)
    if open_challenge:
        return ChallengeEligibility(
            entry_fee=0, coin_reward=0, uses_free_challenge=False, expires_at=expires_at, open_challenge=True
        )

    if in_grace_period(belt, rules, now):
        raise EligibilityError(EligibilityReason.GRACE_PERIOD, "Belt holder is still in the grace period")

    cooldown = timedelta(days=rules.challenge_cooldown_days)
    recent = [c for c in challenger.belt_challenges if now - ensure_utc(c.created_at) < cooldown]
    if recent:
        last = max(ensure_utc(c.created_at) for c in recent)
        raise EligibilityError(
            EligibilityReason.COOLDOWN,
            f"You can challenge this belt again after {(last + cooldown).isoformat()}",
        )

    if not rules.require_coins_for_challenge:
        return ChallengeEligibility(entry_fee=0, coin_reward=0, uses_free_challenge=False, expires_at=expires_at)

    fee = belt_entry_fee(belt.type, rules)
    reward = compute_payout_split(fee, rules).winner
    if free_challenges_remaining(challenger, rules, now) > 0:
        return ChallengeEligibility(entry_fee=fee, coin_reward=reward, uses_free_challenge=True, expires_at=expires_at)
    if challenger.coins < fee:
        raise EligibilityError(
            EligibilityReason.INSUFFICIENT_COINS, f"Insufficient coins: need {fee}, have {challenger.coins}"
        )
    return ChallengeEligibility(entry_fee=fee, coin_reward=reward, uses_free_challenge=False, expires_at=expires_at)


# ── Accept / decline ─────────────────────────────────────────


@dataclass(frozen=True)
class AcceptPlan:
    coins_to_charge: int
    consume_free_challenge: bool
    forced: bool = False


@dataclass(frozen=True)
class DeclinePlan:
    status: ChallengeStatus
    decline_count: int
    belt_status: BeltStatus
    accept: AcceptPlan | None = None

    @property
    def forced(self) -> bool:
        return self.status == ChallengeStatus.ACCEPTED


def _require_pending(challenge: ChallengeRecord, belt: BeltRecord, now: datetime, action: str) -> None:
    status = resolve_challenge_status(challenge, now)
    if status == ChallengeStatus.EXPIRED:
        raise EligibilityError(EligibilityReason.CHALLENGE_EXPIRED, "Challenge has expired")
    if status != ChallengeStatus.PENDING:
        raise StateConflictError("challenge", status, action)
    # The belt changed hands after the challenge was issued
    if challenge.holder_id != belt.holder_id:
        raise EligibilityError(
            EligibilityReason.CHALLENGE_EXPIRED, "Challenge was issued against a previous holder"
        )


def _require_holder(belt: BeltRecord, actor_id: str) -> None:
    if belt.holder_id is None or actor_id != belt.holder_id:
        raise EligibilityError(EligibilityReason.NOT_BELT_HOLDER, "Only the belt holder can respond")


def _plan_payment(
    challenge: ChallengeRecord, challenger: ChallengerAccount, rules: BeltRules, now: datetime, forced: bool
) -> AcceptPlan:
    # A free slot marked at creation is only spent now; if it is gone, the fee applies
    if challenge.uses_free_challenge and free_challenges_remaining(challenger, rules, now) > 0:
        return AcceptPlan(coins_to_charge=0, consume_free_challenge=True, forced=forced)
    if challenge.entry_fee > 0 and challenger.coins < challenge.entry_fee:
        raise EligibilityError(
            EligibilityReason.INSUFFICIENT_COINS,
            f"Challenger cannot cover the {challenge.entry_fee} coin entry fee",
        )
    return AcceptPlan(coins_to_charge=challenge.entry_fee, consume_free_challenge=False, forced=forced)


def plan_accept(
    challenge: ChallengeRecord,
    belt: BeltRecord,
    challenger: ChallengerAccount,
    rules: BeltRules,
    now: datetime,
    actor_id: str,
) -> AcceptPlan:
    _require_pending(challenge, belt, now, "accept")
    _require_holder(belt, actor_id)
    if belt.is_staked:
        raise EligibilityError(EligibilityReason.BELT_STAKED, "Belt is already staked in another challenge")
    return _plan_payment(challenge, challenger, rules, now, forced=False)


def plan_decline(
    challenge: ChallengeRecord,
    belt: BeltRecord,
    challenger: ChallengerAccount,
    rules: BeltRules,
    now: datetime,
    actor_id: str,
) -> DeclinePlan:
    """Decline, or force-accept when the holder owes a mandatory defense."""
    if ChallengeStatus(challenge.status) == ChallengeStatus.DECLINED:
        raise ChallengeAlreadyDeclinedError(challenge.id)
    _require_pending(challenge, belt, now, "decline")
    _require_holder(belt, actor_id)

    if belt.decline_count >= rules.max_declines or defense_overdue(belt, rules, now):
        if belt.is_staked:
            raise EligibilityError(EligibilityReason.BELT_STAKED, "Belt is already staked in another challenge")
        accept = _plan_payment(challenge, challenger, rules, now, forced=True)
        logger.info(
            "Decline converted to mandatory defense",
            extra={"challenge_id": challenge.id, "belt_id": belt.id, "decline_count": belt.decline_count},
        )
        return DeclinePlan(
            status=ChallengeStatus.ACCEPTED,
            decline_count=belt.decline_count,
            belt_status=BeltStatus.STAKED,
            accept=accept,
        )

    count = min(belt.decline_count + 1, rules.max_declines)
    belt_status = BeltStatus.MANDATORY if count >= rules.max_declines else BeltStatus(belt.status)
    return DeclinePlan(status=ChallengeStatus.DECLINED, decline_count=count, belt_status=belt_status)


# ── Settlement ───────────────────────────────────────────────


@dataclass(frozen=True)
class SettlementPlan:
    winner_id: str
    loser_id: str
    payout: PayoutSplit
    belt_transferred: bool
    new_holder_id: str


def plan_settlement(challenge: ChallengeRecord, belt: BeltRecord, winner_id: str, rules: BeltRules) -> SettlementPlan:
    """Settle an accepted challenge once its debate is decided."""
    status = ChallengeStatus(challenge.status)
    if status != ChallengeStatus.ACCEPTED:
        raise StateConflictError("challenge", status, "complete")
    if winner_id not in (challenge.challenger_id, challenge.holder_id):
        raise ValidationError(f"Winner {winner_id} is not part of challenge {challenge.id}")

    loser_id = challenge.holder_id if winner_id == challenge.challenger_id else challenge.challenger_id
    pool = 0 if challenge.free_consumed_at is not None else challenge.entry_fee
    transferred = winner_id == challenge.challenger_id
    return SettlementPlan(
        winner_id=winner_id,
        loser_id=loser_id,
        payout=compute_payout_split(pool, rules),
        belt_transferred=transferred,
        new_holder_id=winner_id if transferred else (belt.holder_id or challenge.holder_id),
    )
