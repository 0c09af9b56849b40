from __future__ import annotations

from fastapi import APIRouter, Query

from podium.api.schemas.coins import EntryFeeResponse, PayoutSplitResponse, TournamentBeltCostResponse
from podium.dependencies import DbSession
from podium.engine.coin_economy import (
    BELT_TIER_FACTOR,
    compute_entry_fee,
    compute_payout_split,
    tournament_belt_cost,
)
from podium.engine.records import BeltType
from podium.services.belts import get_belt_rules

router = APIRouter(tags=["coins"])


@router.get("/coins/entry-fee", response_model=EntryFeeResponse)
async def entry_fee(
    db: DbSession,
    belt_type: BeltType | None = Query(None),
    base_fee: float | None = Query(None, ge=0),
    multiplier: float | None = Query(None, gt=0),
    context_factor: int | None = Query(None, ge=0),
):
    """Entry fee from explicit inputs, or from a belt type's settings and tier."""
    if belt_type is not None:
        rules = await get_belt_rules(belt_type, db)
        base_fee = rules.entry_fee_base if base_fee is None else base_fee
        multiplier = rules.entry_fee_multiplier if multiplier is None else multiplier
        context_factor = BELT_TIER_FACTOR[belt_type] if context_factor is None else context_factor
    base_fee = 0 if base_fee is None else base_fee
    multiplier = 1 if multiplier is None else multiplier
    context_factor = context_factor or 0
    return EntryFeeResponse(
        entry_fee=compute_entry_fee(base_fee, multiplier, context_factor),
        base_fee=base_fee,
        multiplier=multiplier,
        context_factor=context_factor,
    )


@router.get("/coins/payout-split", response_model=PayoutSplitResponse)
async def payout_split(
    db: DbSession,
    total_pool: int = Query(..., ge=0),
    belt_type: BeltType = Query(BeltType.CATEGORY),
):
    rules = await get_belt_rules(belt_type, db)
    split = compute_payout_split(total_pool, rules)
    return PayoutSplitResponse(
        total_pool=total_pool, winner=split.winner, loser=split.loser, platform=split.platform
    )


@router.get("/coins/tournament-belt-cost", response_model=TournamentBeltCostResponse)
async def belt_cost(db: DbSession, size: int = Query(..., ge=2)):
    rules = await get_belt_rules(BeltType.TOURNAMENT, db)
    return TournamentBeltCostResponse(size=size, cost=tournament_belt_cost(size, rules))
