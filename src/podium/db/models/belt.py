from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from podium.db.base import Base


class Belt(Base):
    __tablename__ = "belts"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    type: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True
    )  # ROOKIE, CATEGORY, CHAMPIONSHIP, UNDEFEATED, TOURNAMENT
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="VACANT", index=True
    )  # VACANT, ACTIVE, MANDATORY, STAKED, INACTIVE
    holder_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=True, index=True
    )
    became_holder_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_defended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    decline_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    coin_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    times_defended: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    successful_defenses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_staked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tournament_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tournaments.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class BeltChallenge(Base):
    __tablename__ = "belt_challenges"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    belt_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("belts.id"), nullable=False, index=True
    )
    challenger_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    holder_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="PENDING", index=True
    )  # PENDING, ACCEPTED, DECLINED, EXPIRED, COMPLETED
    entry_fee: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    coin_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    uses_free_challenge: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    free_consumed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    forced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    winner_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class BeltSettings(Base):
    __tablename__ = "belt_settings"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    belt_type: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    defense_period_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    inactivity_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    mandatory_defense_days: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    grace_period_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    max_declines: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    challenge_cooldown_days: Mapped[int] = mapped_column(Integer, nullable=False, default=7)
    challenge_expiry_days: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    free_challenges_per_week: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    elo_range: Mapped[int] = mapped_column(Integer, nullable=False, default=200)
    entry_fee_base: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    entry_fee_multiplier: Mapped[float] = mapped_column(Float, nullable=False, default=1.5)
    winner_reward_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    loser_consolation_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    platform_fee_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    tournament_belt_cost_small: Mapped[int] = mapped_column(Integer, nullable=False, default=500)
    tournament_belt_cost_medium: Mapped[int] = mapped_column(Integer, nullable=False, default=1000)
    tournament_belt_cost_large: Mapped[int] = mapped_column(Integer, nullable=False, default=2000)
    require_coins_for_challenge: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
