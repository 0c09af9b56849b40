from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from podium.engine.records import BeltType


class BeltResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    type: str
    status: str
    holder_id: uuid.UUID | None = None
    became_holder_at: datetime | None = None
    last_defended_at: datetime | None = None
    decline_count: int
    coin_value: int
    times_defended: int
    successful_defenses: int
    is_staked: bool
    tournament_id: uuid.UUID | None = None


class ChallengeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    belt_id: uuid.UUID
    challenger_id: uuid.UUID
    holder_id: uuid.UUID
    status: str
    entry_fee: int
    coin_reward: int
    uses_free_challenge: bool
    free_consumed_at: datetime | None = None
    forced: bool
    winner_id: uuid.UUID | None = None
    created_at: datetime
    expires_at: datetime
    responded_at: datetime | None = None
    completed_at: datetime | None = None


class BeltDetailResponse(BeltResponse):
    challenges: list[ChallengeResponse] = []


class CreateBeltRequest(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    type: BeltType
    holder_id: uuid.UUID | None = None
    coin_value: int = Field(0, ge=0)


class CreateChallengeRequest(BaseModel):
    challenger_id: uuid.UUID


class ChallengeActionRequest(BaseModel):
    """The acting user. Authentication happens upstream."""
    actor_id: uuid.UUID


class CompleteChallengeRequest(BaseModel):
    winner_id: uuid.UUID


class InactiveCheckResponse(BaseModel):
    marked_inactive: list[uuid.UUID]
