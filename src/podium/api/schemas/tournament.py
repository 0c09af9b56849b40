from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from podium.engine.records import Position, ReseedMethod, TournamentFormat


class TournamentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    format: str
    status: str
    current_round: int
    total_rounds: int
    max_participants: int
    reseed_after_round: bool
    reseed_method: str
    elimination_percent: int
    prize_pool: int
    belt_cost: int
    champion_id: uuid.UUID | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None


class ParticipantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    seed: int
    status: str
    selected_position: str | None = None
    cumulative_score: float
    wins: int
    losses: int
    elo_at_start: float
    elimination_round: int | None = None
    elimination_reason: str | None = None
    elimination_reason_display: str | None = None


class MatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    round: int
    position: int
    participant1_id: uuid.UUID | None = None
    participant2_id: uuid.UUID | None = None
    winner_id: uuid.UUID | None = None
    status: str
    participant1_score: float | None = None
    participant2_score: float | None = None
    participant1_breakdown: dict[str, float] | None = None
    participant2_breakdown: dict[str, float] | None = None
    judge_commentary: str | None = None
    completed_at: datetime | None = None


class TournamentDetailResponse(TournamentResponse):
    participants: list[ParticipantResponse] = []
    matches: list[MatchResponse] = []


class CreateTournamentRequest(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    format: TournamentFormat = TournamentFormat.BRACKET
    max_participants: int
    reseed_after_round: bool = False
    reseed_method: ReseedMethod = ReseedMethod.ELO_BASED
    elimination_percent: int | None = None
    prize_pool: int = Field(0, ge=0)
    creator_id: uuid.UUID | None = None
    with_belt: bool = False


class RegisterRequest(BaseModel):
    user_id: uuid.UUID
    position: Position | None = None


class MatchResultRequest(BaseModel):
    winner_id: uuid.UUID | None = None
    participant1_score: float | None = None
    participant2_score: float | None = None
    participant1_breakdown: dict[str, float] | None = None
    participant2_breakdown: dict[str, float] | None = None
    judge_commentary: str | None = None
    forfeit: bool = False


class EliminationResponse(BaseModel):
    participant_id: uuid.UUID
    round: int
    reason: str | None = None


class AdvanceRoundResponse(BaseModel):
    round: int
    next_round: int | None = None
    advancing: list[uuid.UUID]
    eliminations: list[EliminationResponse]
    completed: bool
    champion_participant_id: uuid.UUID | None = None
    tournament: TournamentResponse
