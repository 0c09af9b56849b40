"""Belt challenges backed by the database.

Rules come from the ``belt_settings`` row for the belt's type and are passed
to ``podium.engine.belt_policy`` as an immutable ``BeltRules``.
"""
from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from podium.config import settings
from podium.db.models.belt import Belt, BeltChallenge, BeltSettings
from podium.db.models.user import User
from podium.engine.belt_policy import (
    AcceptPlan,
    check_challenge_eligibility,
    is_belt_inactive,
    plan_accept,
    plan_decline,
    plan_settlement,
    resolve_challenge_status,
)
from podium.engine.coin_economy import validate_rules
from podium.engine.errors import (
    BeltSystemDisabledError,
    ConfigurationError,
    EligibilityError,
    NotFoundError,
)
from podium.engine.records import (
    BeltRecord,
    BeltRules,
    BeltStatus,
    BeltType,
    ChallengeRecord,
    ChallengerAccount,
    ChallengeStatus,
    CoinTransactionType,
    EligibilityReason,
)
from podium.monitoring.metrics import (
    belt_transfers_total,
    challenge_rejections_total,
    challenges_total,
    coins_moved_total,
)
from podium.services.coins import add_coins, deduct_coins

logger = logging.getLogger(__name__)

_RULE_FIELDS = (
    "defense_period_days",
    "inactivity_days",
    "mandatory_defense_days",
    "grace_period_days",
    "max_declines",
    "challenge_cooldown_days",
    "challenge_expiry_days",
    "free_challenges_per_week",
    "elo_range",
    "entry_fee_base",
    "entry_fee_multiplier",
    "winner_reward_percent",
    "loser_consolation_percent",
    "platform_fee_percent",
    "tournament_belt_cost_small",
    "tournament_belt_cost_medium",
    "tournament_belt_cost_large",
    "require_coins_for_challenge",
)


def _require_enabled() -> None:
    if not settings.belt_system_enabled:
        raise BeltSystemDisabledError()


async def get_belt_rules(belt_type: BeltType | str, db_session: AsyncSession) -> BeltRules:
    """Load and validate the settings for a belt type. Missing settings block the operation."""
    result = await db_session.execute(
        select(BeltSettings).where(BeltSettings.belt_type == str(belt_type))
    )
    row = result.scalar_one_or_none()
    if row is None:
        raise ConfigurationError(f"No belt settings configured for {belt_type}")
    rules = BeltRules(
        **{name: getattr(row, name) for name in _RULE_FIELDS},
        free_challenge_window_days=settings.free_challenge_window_days,
    )
    return validate_rules(rules)


def to_belt_record(belt: Belt) -> BeltRecord:
    return BeltRecord(
        id=str(belt.id),
        type=BeltType(belt.type),
        status=BeltStatus(belt.status),
        holder_id=str(belt.holder_id) if belt.holder_id else None,
        became_holder_at=belt.became_holder_at,
        last_defended_at=belt.last_defended_at,
        decline_count=belt.decline_count,
        coin_value=belt.coin_value,
        is_staked=belt.is_staked,
    )


def to_challenge_record(c: BeltChallenge) -> ChallengeRecord:
    return ChallengeRecord(
        id=str(c.id),
        belt_id=str(c.belt_id),
        challenger_id=str(c.challenger_id),
        holder_id=str(c.holder_id),
        status=ChallengeStatus(c.status),
        created_at=c.created_at,
        expires_at=c.expires_at,
        entry_fee=c.entry_fee,
        coin_reward=c.coin_reward,
        uses_free_challenge=c.uses_free_challenge,
        free_consumed_at=c.free_consumed_at,
    )


# ── Loaders ──────────────────────────────────────────────────


async def _load_belt(belt_id: uuid.UUID, db_session: AsyncSession) -> Belt:
    result = await db_session.execute(select(Belt).where(Belt.id == belt_id).with_for_update())
    belt = result.scalar_one_or_none()
    if belt is None:
        raise NotFoundError("belt", belt_id)
    return belt


async def _load_challenge(challenge_id: uuid.UUID, db_session: AsyncSession) -> BeltChallenge:
    result = await db_session.execute(
        select(BeltChallenge).where(BeltChallenge.id == challenge_id).with_for_update()
    )
    challenge = result.scalar_one_or_none()
    if challenge is None:
        raise NotFoundError("challenge", challenge_id)
    return challenge


async def _load_user(user_id: uuid.UUID, db_session: AsyncSession) -> User:
    user = await db_session.get(User, user_id)
    if user is None:
        raise NotFoundError("user", user_id)
    return user


async def _challenger_account(
    user: User, belt_id: uuid.UUID, rules: BeltRules, now: datetime, db_session: AsyncSession
) -> ChallengerAccount:
    result = await db_session.execute(
        select(BeltChallenge).where(
            BeltChallenge.challenger_id == user.id, BeltChallenge.belt_id == belt_id
        )
    )
    belt_challenges = [to_challenge_record(c) for c in result.scalars().all()]

    window_start = now - timedelta(days=rules.free_challenge_window_days)
    result = await db_session.execute(
        select(BeltChallenge.free_consumed_at).where(
            BeltChallenge.challenger_id == user.id,
            BeltChallenge.free_consumed_at.is_not(None),
            BeltChallenge.free_consumed_at > window_start,
        )
    )
    return ChallengerAccount(
        user_id=str(user.id),
        coins=user.coins,
        belt_challenges=belt_challenges,
        free_consumed_at=[row[0] for row in result.all()],
    )


async def _live_pending(belt_id: uuid.UUID, now: datetime, db_session: AsyncSession) -> list[BeltChallenge]:
    """Pending challenges on a belt, marking any that have lapsed as EXPIRED."""
    result = await db_session.execute(
        select(BeltChallenge).where(
            BeltChallenge.belt_id == belt_id, BeltChallenge.status == str(ChallengeStatus.PENDING)
        )
    )
    live = []
    for c in result.scalars().all():
        if resolve_challenge_status(to_challenge_record(c), now) == ChallengeStatus.EXPIRED:
            c.status = str(ChallengeStatus.EXPIRED)
        else:
            live.append(c)
    return live


async def _persist_expiry(challenge: BeltChallenge, error: EligibilityError, db_session: AsyncSession) -> None:
    """Write the lazily detected expiry before the error reaches the caller."""
    challenge_rejections_total.labels(reason=error.reason).inc()
    if error.reason == EligibilityReason.CHALLENGE_EXPIRED and challenge.status == ChallengeStatus.PENDING:
        challenge.status = str(ChallengeStatus.EXPIRED)
        await db_session.commit()
        logger.info("Challenge expired", extra={"challenge_id": str(challenge.id)})


# ── Belts ────────────────────────────────────────────────────


async def create_belt(
    name: str,
    belt_type: BeltType,
    db_session: AsyncSession,
    *,
    holder_id: uuid.UUID | None = None,
    coin_value: int = 0,
    now: datetime | None = None,
) -> Belt:
    """Create a belt, vacant or with an initial holder."""
    _require_enabled()
    now = now or datetime.now(UTC)
    belt_type = BeltType(belt_type)
    await get_belt_rules(belt_type, db_session)
    if holder_id is not None:
        await _load_user(holder_id, db_session)

    belt = Belt(
        name=name,
        type=str(belt_type),
        status=str(BeltStatus.ACTIVE if holder_id else BeltStatus.VACANT),
        holder_id=holder_id,
        became_holder_at=now if holder_id else None,
        coin_value=coin_value,
    )
    db_session.add(belt)
    await db_session.commit()
    logger.info("Belt created", extra={"belt_id": str(belt.id), "type": str(belt_type)})
    return belt


async def _transfer(belt: Belt, new_holder_id: uuid.UUID, now: datetime, db_session: AsyncSession) -> None:
    """Hand the belt over. Challenges still pending against the old holder expire."""
    previous = belt.holder_id
    result = await db_session.execute(
        select(BeltChallenge).where(
            BeltChallenge.belt_id == belt.id, BeltChallenge.status == str(ChallengeStatus.PENDING)
        )
    )
    stale = result.scalars().all()
    for c in stale:
        c.status = str(ChallengeStatus.EXPIRED)
    belt.holder_id = new_holder_id
    belt.became_holder_at = now
    belt.last_defended_at = None
    belt.decline_count = 0
    belt.status = str(BeltStatus.ACTIVE)
    belt.is_staked = False
    belt_transfers_total.labels(belt_type=belt.type).inc()
    logger.info(
        "Belt transferred",
        extra={
            "belt_id": str(belt.id),
            "from_user_id": str(previous),
            "to_user_id": str(new_holder_id),
            "expired_challenges": len(stale),
        },
    )


async def check_inactive_belts(db_session: AsyncSession, now: datetime | None = None) -> list[Belt]:
    """Mark held belts that went unchallenged past inactivity_days as INACTIVE."""
    _require_enabled()
    now = now or datetime.now(UTC)
    result = await db_session.execute(
        select(Belt)
        .where(
            Belt.holder_id.is_not(None),
            Belt.status.in_([str(BeltStatus.ACTIVE), str(BeltStatus.MANDATORY)]),
        )
        .with_for_update()
    )
    rules_by_type: dict[str, BeltRules] = {}
    changed = []
    for belt in result.scalars().all():
        if belt.type not in rules_by_type:
            rules_by_type[belt.type] = await get_belt_rules(belt.type, db_session)
        pending = await _live_pending(belt.id, now, db_session)
        if is_belt_inactive(to_belt_record(belt), rules_by_type[belt.type], now, len(pending)):
            belt.status = str(BeltStatus.INACTIVE)
            changed.append(belt)

    await db_session.commit()
    if changed:
        logger.info("Belts marked inactive", extra={"count": len(changed)})
    return changed


# ── Challenges ───────────────────────────────────────────────


async def create_challenge(
    belt_id: uuid.UUID,
    challenger_id: uuid.UUID,
    db_session: AsyncSession,
    now: datetime | None = None,
) -> BeltChallenge:
    _require_enabled()
    now = now or datetime.now(UTC)
    belt = await _load_belt(belt_id, db_session)
    challenger = await _load_user(challenger_id, db_session)
    rules = await get_belt_rules(belt.type, db_session)

    pending = await _live_pending(belt.id, now, db_session)
    account = await _challenger_account(challenger, belt.id, rules, now, db_session)
    try:
        eligibility = check_challenge_eligibility(to_belt_record(belt), account, rules, now, len(pending))
    except EligibilityError as e:
        challenge_rejections_total.labels(reason=e.reason).inc()
        raise

    if eligibility.open_challenge and belt.status != BeltStatus.INACTIVE:
        belt.status = str(BeltStatus.INACTIVE)

    challenge = BeltChallenge(
        belt_id=belt.id,
        challenger_id=challenger.id,
        holder_id=belt.holder_id,
        status=str(ChallengeStatus.PENDING),
        entry_fee=eligibility.entry_fee,
        coin_reward=eligibility.coin_reward,
        uses_free_challenge=eligibility.uses_free_challenge,
        created_at=now,
        expires_at=eligibility.expires_at,
    )
    db_session.add(challenge)
    await db_session.commit()
    challenges_total.labels(belt_type=belt.type, status=str(ChallengeStatus.PENDING)).inc()
    logger.info(
        "Challenge created",
        extra={
            "challenge_id": str(challenge.id),
            "belt_id": str(belt.id),
            "challenger_id": str(challenger.id),
            "entry_fee": challenge.entry_fee,
            "free": challenge.uses_free_challenge,
        },
    )
    return challenge


async def _apply_acceptance(
    challenge: BeltChallenge, belt: Belt, plan: AcceptPlan, now: datetime, db_session: AsyncSession
) -> None:
    if plan.consume_free_challenge:
        challenge.free_consumed_at = now
    else:
        challenge.uses_free_challenge = False
        await deduct_coins(
            challenge.challenger_id, plan.coins_to_charge, CoinTransactionType.BELT_CHALLENGE_ENTRY, db_session,
            description=f"Challenge entry: {belt.name}", belt_id=belt.id, challenge_id=challenge.id,
        )
    challenge.status = str(ChallengeStatus.ACCEPTED)
    challenge.forced = plan.forced
    challenge.responded_at = now
    belt.status = str(BeltStatus.STAKED)
    belt.is_staked = True


async def _load_for_response(
    challenge_id: uuid.UUID, db_session: AsyncSession
) -> tuple[BeltChallenge, Belt, User, BeltRules]:
    challenge = await _load_challenge(challenge_id, db_session)
    belt = await _load_belt(challenge.belt_id, db_session)
    challenger = await _load_user(challenge.challenger_id, db_session)
    rules = await get_belt_rules(belt.type, db_session)
    return challenge, belt, challenger, rules


async def accept_challenge(
    challenge_id: uuid.UUID,
    actor_id: uuid.UUID,
    db_session: AsyncSession,
    now: datetime | None = None,
) -> BeltChallenge:
    """Holder accepts: the entry is paid (or the free slot spent) and the belt is staked."""
    _require_enabled()
    now = now or datetime.now(UTC)
    challenge, belt, challenger, rules = await _load_for_response(challenge_id, db_session)
    account = await _challenger_account(challenger, belt.id, rules, now, db_session)
    try:
        plan = plan_accept(to_challenge_record(challenge), to_belt_record(belt), account, rules, now, str(actor_id))
    except EligibilityError as e:
        await _persist_expiry(challenge, e, db_session)
        raise

    await _apply_acceptance(challenge, belt, plan, now, db_session)
    await db_session.commit()
    challenges_total.labels(belt_type=belt.type, status=str(ChallengeStatus.ACCEPTED)).inc()
    logger.info(
        "Challenge accepted",
        extra={"challenge_id": str(challenge.id), "belt_id": str(belt.id), "free": plan.consume_free_challenge},
    )
    return challenge


async def decline_challenge(
    challenge_id: uuid.UUID,
    actor_id: uuid.UUID,
    db_session: AsyncSession,
    now: datetime | None = None,
) -> BeltChallenge:
    """Holder declines. Past the decline limit or an overdue defense this accepts instead.

    Raises ChallengeAlreadyDeclinedError when the challenge was already declined.
    """
    _require_enabled()
    now = now or datetime.now(UTC)
    challenge, belt, challenger, rules = await _load_for_response(challenge_id, db_session)
    account = await _challenger_account(challenger, belt.id, rules, now, db_session)
    try:
        plan = plan_decline(to_challenge_record(challenge), to_belt_record(belt), account, rules, now, str(actor_id))
    except EligibilityError as e:
        await _persist_expiry(challenge, e, db_session)
        raise

    if plan.forced:
        await _apply_acceptance(challenge, belt, plan.accept, now, db_session)
    else:
        challenge.status = str(ChallengeStatus.DECLINED)
        challenge.responded_at = now
        belt.decline_count = plan.decline_count
        belt.status = str(plan.belt_status)

    await db_session.commit()
    challenges_total.labels(belt_type=belt.type, status=str(plan.status)).inc()
    logger.info(
        "Challenge declined" if not plan.forced else "Challenge force-accepted",
        extra={"challenge_id": str(challenge.id), "belt_id": str(belt.id), "decline_count": belt.decline_count},
    )
    return challenge


async def complete_challenge(
    challenge_id: uuid.UUID,
    winner_id: uuid.UUID,
    db_session: AsyncSession,
    now: datetime | None = None,
) -> BeltChallenge:
    """Settle an accepted challenge: pay out the pool and transfer or defend the belt."""
    _require_enabled()
    now = now or datetime.now(UTC)
    challenge = await _load_challenge(challenge_id, db_session)
    belt = await _load_belt(challenge.belt_id, db_session)
    rules = await get_belt_rules(belt.type, db_session)

    plan = plan_settlement(to_challenge_record(challenge), to_belt_record(belt), str(winner_id), rules)
    winner = uuid.UUID(plan.winner_id)
    loser = uuid.UUID(plan.loser_id)

    await add_coins(
        winner, plan.payout.winner, CoinTransactionType.BELT_CHALLENGE_REWARD, db_session,
        description=f"Challenge win: {belt.name}", belt_id=belt.id, challenge_id=challenge.id,
    )
    await add_coins(
        loser, plan.payout.loser, CoinTransactionType.BELT_CHALLENGE_CONSOLATION, db_session,
        description=f"Challenge consolation: {belt.name}", belt_id=belt.id, challenge_id=challenge.id,
    )
    if plan.payout.platform:
        coins_moved_total.labels(type=str(CoinTransactionType.PLATFORM_FEE)).inc(plan.payout.platform)

    belt.times_defended += 1
    if plan.belt_transferred:
        await _transfer(belt, winner, now, db_session)
    else:
        belt.successful_defenses += 1
        belt.last_defended_at = now
        belt.decline_count = 0
        belt.status = str(BeltStatus.ACTIVE)
        belt.is_staked = False

    challenge.status = str(ChallengeStatus.COMPLETED)
    challenge.winner_id = winner
    challenge.completed_at = now
    await db_session.commit()
    challenges_total.labels(belt_type=belt.type, status=str(ChallengeStatus.COMPLETED)).inc()
    logger.info(
        "Challenge completed",
        extra={
            "challenge_id": str(challenge.id),
            "winner_id": str(winner),
            "belt_transferred": plan.belt_transferred,
            "platform_fee": plan.payout.platform,
        },
    )
    return challenge
