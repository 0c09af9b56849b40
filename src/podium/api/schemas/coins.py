from __future__ import annotations

from pydantic import BaseModel


class EntryFeeResponse(BaseModel):
    entry_fee: int
    base_fee: float
    multiplier: float
    context_factor: int


class PayoutSplitResponse(BaseModel):
    total_pool: int
    winner: int
    loser: int
    platform: int


class TournamentBeltCostResponse(BaseModel):
    size: int
    cost: int
