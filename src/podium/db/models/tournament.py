from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from podium.db.base import Base


class Tournament(Base):
    __tablename__ = "tournaments"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    format: Mapped[str] = mapped_column(
        String(20), nullable=False, default="BRACKET"
    )  # BRACKET, CHAMPIONSHIP, KING_OF_THE_HILL
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="UPCOMING", index=True
    )  # UPCOMING, REGISTRATION_OPEN, IN_PROGRESS, COMPLETED, CANCELLED
    current_round: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_rounds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False)
    reseed_after_round: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reseed_method: Mapped[str] = mapped_column(
        String(20), nullable=False, default="ELO_BASED"
    )  # SEED, SCORE, ELO_BASED
    elimination_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=25)
    prize_pool: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    belt_cost: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    creator_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=True
    )
    champion_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class TournamentParticipant(Base):
    __tablename__ = "tournament_participants"
    __table_args__ = (
        UniqueConstraint("tournament_id", "seed", name="uq_participant_seed"),
        UniqueConstraint("tournament_id", "user_id", name="uq_participant_user"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tournament_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tournaments.id"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    seed: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")  # ACTIVE, ELIMINATED
    selected_position: Mapped[str | None] = mapped_column(String(8), nullable=True)  # PRO, CON
    cumulative_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    wins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    losses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    elo_at_start: Mapped[float] = mapped_column(Float, nullable=False, default=1200.0)
    elimination_round: Mapped[int | None] = mapped_column(Integer, nullable=True)
    elimination_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class TournamentMatch(Base):
    __tablename__ = "tournament_matches"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tournament_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tournaments.id"), nullable=False, index=True
    )
    round: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    participant1_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tournament_participants.id"), nullable=True
    )
    participant2_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tournament_participants.id"), nullable=True
    )
    winner_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="SCHEDULED", index=True
    )  # SCHEDULED, IN_PROGRESS, COMPLETED, FORFEITED, BYE
    participant1_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    participant2_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    # criterion name -> points, criteria come from the judges configured by admins
    participant1_breakdown: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    participant2_breakdown: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    judge_commentary: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
