"""Belt challenge flow against the in-memory database."""
from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select

from podium.config import settings
from podium.db.models.belt import BeltSettings
from podium.db.models.coin_transaction import CoinTransaction
from podium.engine.errors import (
    BeltSystemDisabledError,
    ChallengeAlreadyDeclinedError,
    ConfigurationError,
    EligibilityError,
    StateConflictError,
)
from podium.services.belts import (
    accept_challenge,
    check_inactive_belts,
    complete_challenge,
    create_belt,
    create_challenge,
    decline_challenge,
    get_belt_rules,
)
from tests.conftest import NOW


async def _ledger(db_session, user_id) -> list[CoinTransaction]:
    result = await db_session.execute(
        select(CoinTransaction).where(CoinTransaction.user_id == user_id).order_by(CoinTransaction.created_at)
    )
    return list(result.scalars().all())


# ── Settings ────────────────────────────────────────────────────

class TestBeltRules:
    async def test_loads_defaults(self, db_session, seed_belt_settings):
        rules = await get_belt_rules("CATEGORY", db_session)
        assert rules.entry_fee_base == 100
        assert rules.max_declines == 2
        assert rules.free_challenge_window_days == settings.free_challenge_window_days

    async def test_missing_settings_block(self, db_session):
        with pytest.raises(ConfigurationError):
            await get_belt_rules("ROOKIE", db_session)

    async def test_inconsistent_settings_block(self, db_session):
        db_session.add(BeltSettings(belt_type="ROOKIE", winner_reward_percent=90, loser_consolation_percent=20))
        await db_session.flush()
        with pytest.raises(ConfigurationError):
            await get_belt_rules("ROOKIE", db_session)


# ── Belts ───────────────────────────────────────────────────────

class TestCreateBelt:
    async def test_held_belt_is_active(self, db_session, seed_users, seed_belt_settings):
        belt = await create_belt("Logic Belt", "CATEGORY", db_session, holder_id=seed_users[2].id, now=NOW)
        assert belt.status == "ACTIVE"
        assert belt.became_holder_at == NOW

    async def test_unheld_belt_is_vacant(self, db_session, seed_belt_settings):
        belt = await create_belt("Open Belt", "ROOKIE", db_session, now=NOW)
        assert belt.status == "VACANT"
        assert belt.holder_id is None

    async def test_disabled_belt_system(self, db_session, seed_belt_settings, monkeypatch):
        monkeypatch.setattr(settings, "belt_system_enabled", False)
        with pytest.raises(BeltSystemDisabledError):
            await create_belt("Logic Belt", "CATEGORY", db_session, now=NOW)


# ── Creating challenges ─────────────────────────────────────────

class TestCreateChallenge:
    async def test_first_challenge_uses_free_slot(self, db_session, seed_belt, seed_users):
        challenge = await create_challenge(seed_belt.id, seed_users[1].id, db_session, now=NOW)
        assert challenge.status == "PENDING"
        assert challenge.entry_fee == 150
        assert challenge.coin_reward == 90
        assert challenge.uses_free_challenge is True
        assert challenge.holder_id == seed_users[0].id
        assert challenge.expires_at == NOW + timedelta(days=3)
        # Nothing is charged until the holder accepts
        assert seed_users[1].coins == 1000

    async def test_duplicate_pending(self, db_session, seed_belt, seed_users):
        await create_challenge(seed_belt.id, seed_users[1].id, db_session, now=NOW)
        with pytest.raises(EligibilityError) as exc:
            await create_challenge(seed_belt.id, seed_users[1].id, db_session, now=NOW + timedelta(hours=1))
        assert exc.value.reason == "DUPLICATE_PENDING"

    async def test_holder_cannot_challenge(self, db_session, seed_belt, seed_users):
        with pytest.raises(EligibilityError) as exc:
            await create_challenge(seed_belt.id, seed_users[0].id, db_session, now=NOW)
        assert exc.value.reason == "SELF_CHALLENGE"

    async def test_cooldown_after_lapsed_challenge(self, db_session, seed_belt, seed_users):
        await create_challenge(seed_belt.id, seed_users[1].id, db_session, now=NOW)
        later = NOW + timedelta(days=4)
        with pytest.raises(EligibilityError) as exc:
            await create_challenge(seed_belt.id, seed_users[1].id, db_session, now=later)
        assert exc.value.reason == "COOLDOWN"

    async def test_lapsed_challenges_are_marked_expired(self, db_session, seed_belt, seed_users):
        first = await create_challenge(seed_belt.id, seed_users[1].id, db_session, now=NOW)
        await create_challenge(seed_belt.id, seed_users[2].id, db_session, now=NOW + timedelta(days=4))
        assert first.status == "EXPIRED"

    async def test_inactive_belt_takes_open_challenge(self, db_session, seed_belt, seed_users):
        later = NOW + timedelta(days=25)
        seed_users[3].coins = 0
        challenge = await create_challenge(seed_belt.id, seed_users[3].id, db_session, now=later)
        assert challenge.entry_fee == 0
        assert seed_belt.status == "INACTIVE"


# ── Accept ──────────────────────────────────────────────────────

class TestAcceptChallenge:
    async def test_paid_accept_stakes_belt(self, db_session, seed_belt, seed_pending_challenge, seed_users):
        challenge = await accept_challenge(seed_pending_challenge.id, seed_users[0].id, db_session, now=NOW)
        assert challenge.status == "ACCEPTED"
        assert challenge.responded_at == NOW
        assert challenge.forced is False
        assert seed_belt.status == "STAKED"
        assert seed_belt.is_staked is True
        assert seed_users[1].coins == 850

        [tx] = await _ledger(db_session, seed_users[1].id)
        assert tx.type == "BELT_CHALLENGE_ENTRY"
        assert tx.amount == -150
        assert tx.challenge_id == challenge.id

    async def test_free_accept_charges_nothing(self, db_session, seed_belt, seed_users):
        created = await create_challenge(seed_belt.id, seed_users[1].id, db_session, now=NOW)
        challenge = await accept_challenge(created.id, seed_users[0].id, db_session, now=NOW)
        assert challenge.free_consumed_at == NOW
        assert seed_users[1].coins == 1000
        assert await _ledger(db_session, seed_users[1].id) == []

    async def test_only_holder_accepts(self, db_session, seed_pending_challenge, seed_users):
        with pytest.raises(EligibilityError) as exc:
            await accept_challenge(seed_pending_challenge.id, seed_users[1].id, db_session, now=NOW)
        assert exc.value.reason == "NOT_BELT_HOLDER"

    async def test_expired_challenge_is_persisted(self, db_session, seed_pending_challenge, seed_users):
        with pytest.raises(EligibilityError) as exc:
            await accept_challenge(
                seed_pending_challenge.id, seed_users[0].id, db_session, now=NOW + timedelta(days=3)
            )
        assert exc.value.reason == "CHALLENGE_EXPIRED"
        assert seed_pending_challenge.status == "EXPIRED"

    async def test_challenger_out_of_coins(self, db_session, seed_pending_challenge, seed_users):
        seed_users[1].coins = 10
        with pytest.raises(EligibilityError) as exc:
            await accept_challenge(seed_pending_challenge.id, seed_users[0].id, db_session, now=NOW)
        assert exc.value.reason == "INSUFFICIENT_COINS"
        assert seed_pending_challenge.status == "PENDING"


# ── Decline ─────────────────────────────────────────────────────

class TestDeclineChallenge:
    async def test_decline_counts(self, db_session, seed_belt, seed_pending_challenge, seed_users):
        challenge = await decline_challenge(seed_pending_challenge.id, seed_users[0].id, db_session, now=NOW)
        assert challenge.status == "DECLINED"
        assert seed_belt.decline_count == 1
        assert seed_belt.status == "ACTIVE"

    async def test_second_decline_of_same_challenge(self, db_session, seed_pending_challenge, seed_users):
        await decline_challenge(seed_pending_challenge.id, seed_users[0].id, db_session, now=NOW)
        with pytest.raises(ChallengeAlreadyDeclinedError):
            await decline_challenge(seed_pending_challenge.id, seed_users[0].id, db_session, now=NOW)

    async def test_decline_at_limit_forces_accept(self, db_session, seed_belt, seed_pending_challenge, seed_users):
        seed_belt.decline_count = 2
        seed_belt.status = "MANDATORY"
        challenge = await decline_challenge(seed_pending_challenge.id, seed_users[0].id, db_session, now=NOW)
        assert challenge.status == "ACCEPTED"
        assert challenge.forced is True
        assert seed_belt.status == "STAKED"
        assert seed_users[1].coins == 850

    async def test_overdue_defense_forces_accept(self, db_session, seed_belt, seed_pending_challenge, seed_users):
        seed_belt.last_defended_at = NOW - timedelta(days=61)
        challenge = await decline_challenge(seed_pending_challenge.id, seed_users[0].id, db_session, now=NOW)
        assert challenge.status == "ACCEPTED"


# ── Settlement ──────────────────────────────────────────────────

class TestCompleteChallenge:
    async def test_challenger_wins_belt(self, db_session, seed_belt, seed_pending_challenge, seed_users):
        await accept_challenge(seed_pending_challenge.id, seed_users[0].id, db_session, now=NOW)
        later = NOW + timedelta(days=1)
        challenge = await complete_challenge(seed_pending_challenge.id, seed_users[1].id, db_session, now=later)

        assert challenge.status == "COMPLETED"
        assert challenge.winner_id == seed_users[1].id
        assert seed_belt.holder_id == seed_users[1].id
        assert seed_belt.became_holder_at == later
        assert seed_belt.last_defended_at is None
        assert seed_belt.is_staked is False
        assert seed_belt.times_defended == 1
        assert seed_belt.successful_defenses == 0
        assert seed_users[1].coins == 1000 - 150 + 90
        assert seed_users[0].coins == 1000 + 45

    async def test_holder_defends(self, db_session, seed_belt, seed_pending_challenge, seed_users):
        seed_belt.decline_count = 1
        await accept_challenge(seed_pending_challenge.id, seed_users[0].id, db_session, now=NOW)
        later = NOW + timedelta(days=1)
        await complete_challenge(seed_pending_challenge.id, seed_users[0].id, db_session, now=later)

        assert seed_belt.holder_id == seed_users[0].id
        assert seed_belt.successful_defenses == 1
        assert seed_belt.last_defended_at == later
        assert seed_belt.decline_count == 0
        assert seed_belt.status == "ACTIVE"
        assert seed_users[0].coins == 1090
        assert seed_users[1].coins == 850 + 45

    async def test_free_challenge_moves_no_coins(self, db_session, seed_belt, seed_users):
        created = await create_challenge(seed_belt.id, seed_users[1].id, db_session, now=NOW)
        await accept_challenge(created.id, seed_users[0].id, db_session, now=NOW)
        await complete_challenge(created.id, seed_users[1].id, db_session, now=NOW)
        assert seed_users[1].coins == 1000
        assert seed_users[0].coins == 1000
        assert seed_belt.holder_id == seed_users[1].id

    async def test_pending_challenge_cannot_complete(self, db_session, seed_pending_challenge, seed_users):
        with pytest.raises(StateConflictError):
            await complete_challenge(seed_pending_challenge.id, seed_users[1].id, db_session, now=NOW)

    async def test_transfer_expires_challenges_against_old_holder(
        self, db_session, seed_belt, seed_pending_challenge, seed_users
    ):
        other = await create_challenge(seed_belt.id, seed_users[2].id, db_session, now=NOW)
        await accept_challenge(seed_pending_challenge.id, seed_users[0].id, db_session, now=NOW)
        await complete_challenge(seed_pending_challenge.id, seed_users[1].id, db_session, now=NOW)
        assert seed_belt.holder_id == seed_users[1].id
        assert other.status == "EXPIRED"

        with pytest.raises(EligibilityError) as exc:
            await accept_challenge(other.id, seed_users[1].id, db_session, now=NOW + timedelta(hours=1))
        assert exc.value.reason == "CHALLENGE_EXPIRED"
        assert seed_belt.is_staked is False
        assert seed_users[0].coins == 1000 + 45

    async def test_new_holder_cannot_answer_stale_challenge(
        self, db_session, seed_belt, seed_pending_challenge, seed_users
    ):
        seed_belt.holder_id = seed_users[3].id
        seed_belt.became_holder_at = NOW - timedelta(hours=2)
        with pytest.raises(EligibilityError) as exc:
            await decline_challenge(seed_pending_challenge.id, seed_users[3].id, db_session, now=NOW)
        assert exc.value.reason == "CHALLENGE_EXPIRED"
        assert seed_pending_challenge.status == "EXPIRED"
        assert seed_belt.decline_count == 0


# ── Inactivity sweep ────────────────────────────────────────────

class TestCheckInactiveBelts:
    async def test_recently_defended_belt_stays_active(self, db_session, seed_belt):
        assert await check_inactive_belts(db_session, now=NOW) == []
        assert seed_belt.status == "ACTIVE"

    async def test_stale_belt_marked_inactive(self, db_session, seed_belt):
        changed = await check_inactive_belts(db_session, now=NOW + timedelta(days=25))
        assert [b.id for b in changed] == [seed_belt.id]
        assert seed_belt.status == "INACTIVE"

    async def test_pending_challenge_keeps_belt_active(self, db_session, seed_belt, seed_pending_challenge):
        seed_belt.last_defended_at = NOW - timedelta(days=35)
        assert await check_inactive_belts(db_session, now=NOW) == []
        assert seed_belt.status == "ACTIVE"
