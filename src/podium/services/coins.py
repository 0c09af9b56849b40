"""Coin balance changes. Every change writes a ledger row.

These helpers flush but never commit; they run inside the caller's
transaction so a failed operation leaves no partial balance change.
"""
from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from podium.db.models.coin_transaction import CoinTransaction
from podium.db.models.user import User
from podium.engine.errors import EligibilityError, NotFoundError, ValidationError
from podium.engine.records import CoinTransactionType, EligibilityReason
from podium.monitoring.metrics import coins_moved_total

logger = logging.getLogger(__name__)


async def _locked_user(user_id: uuid.UUID, db_session: AsyncSession) -> User:
    result = await db_session.execute(select(User).where(User.id == user_id).with_for_update())
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("user", user_id)
    return user


async def _apply(
    user_id: uuid.UUID,
    amount: int,
    tx_type: CoinTransactionType,
    db_session: AsyncSession,
    **refs,
) -> CoinTransaction:
    user = await _locked_user(user_id, db_session)
    if user.coins + amount < 0:
        raise EligibilityError(
            EligibilityReason.INSUFFICIENT_COINS,
            f"Insufficient coins: need {-amount}, have {user.coins}",
        )
    user.coins += amount
    tx = CoinTransaction(
        user_id=user.id,
        type=str(tx_type),
        amount=amount,
        balance_after=user.coins,
        **refs,
    )
    db_session.add(tx)
    await db_session.flush()
    coins_moved_total.labels(type=str(tx_type)).inc(abs(amount))
    logger.info(
        "Coin balance changed",
        extra={"user_id": str(user.id), "type": str(tx_type), "amount": amount, "balance": user.coins},
    )
    return tx


async def add_coins(
    user_id: uuid.UUID,
    amount: int,
    tx_type: CoinTransactionType,
    db_session: AsyncSession,
    *,
    description: str | None = None,
    belt_id: uuid.UUID | None = None,
    challenge_id: uuid.UUID | None = None,
    tournament_id: uuid.UUID | None = None,
) -> CoinTransaction | None:
    """Credit coins. A zero amount is a no-op and writes no ledger row."""
    if amount < 0:
        raise ValidationError(f"Credit amount must be >= 0, got {amount}")
    if amount == 0:
        return None
    return await _apply(
        user_id, amount, tx_type, db_session,
        description=description, belt_id=belt_id, challenge_id=challenge_id, tournament_id=tournament_id,
    )


async def deduct_coins(
    user_id: uuid.UUID,
    amount: int,
    tx_type: CoinTransactionType,
    db_session: AsyncSession,
    *,
    description: str | None = None,
    belt_id: uuid.UUID | None = None,
    challenge_id: uuid.UUID | None = None,
    tournament_id: uuid.UUID | None = None,
) -> CoinTransaction | None:
    """Debit coins. Raises EligibilityError(INSUFFICIENT_COINS) rather than going negative."""
    if amount < 0:
        raise ValidationError(f"Debit amount must be >= 0, got {amount}")
    if amount == 0:
        return None
    return await _apply(
        user_id, -amount, tx_type, db_session,
        description=description, belt_id=belt_id, challenge_id=challenge_id, tournament_id=tournament_id,
    )
