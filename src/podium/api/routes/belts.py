from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime

from fastapi import APIRouter
from sqlalchemy import select

from podium.api.schemas.belt import (
    BeltDetailResponse,
    BeltResponse,
    ChallengeActionRequest,
    ChallengeResponse,
    CompleteChallengeRequest,
    CreateBeltRequest,
    CreateChallengeRequest,
    InactiveCheckResponse,
)
from podium.db.models.belt import Belt, BeltChallenge
from podium.dependencies import DbSession
from podium.engine.belt_policy import resolve_challenge_status
from podium.engine.errors import ChallengeAlreadyDeclinedError, NotFoundError
from podium.services import belts as belt_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["belts"])


def _challenge_response(challenge: BeltChallenge, now: datetime) -> ChallengeResponse:
    """Report the effective status, so a lapsed challenge reads as EXPIRED."""
    resp = ChallengeResponse.model_validate(challenge)
    resp.status = str(resolve_challenge_status(belt_service.to_challenge_record(challenge), now))
    return resp


@router.post("/belts", response_model=BeltResponse, status_code=201)
async def create_belt(db: DbSession, body: CreateBeltRequest):
    belt = await belt_service.create_belt(
        body.name, body.type, db, holder_id=body.holder_id, coin_value=body.coin_value
    )
    return BeltResponse.model_validate(belt)


@router.post("/belts/inactive-check", response_model=InactiveCheckResponse)
async def check_inactive_belts(db: DbSession):
    """Sweep held belts and mark the ones nobody has defended recently as INACTIVE."""
    changed = await belt_service.check_inactive_belts(db)
    return InactiveCheckResponse(marked_inactive=[b.id for b in changed])


@router.get("/belts/{belt_id}", response_model=BeltDetailResponse)
async def get_belt(db: DbSession, belt_id: uuid.UUID):
    belt = await db.get(Belt, belt_id)
    if belt is None:
        raise NotFoundError("belt", belt_id)
    result = await db.execute(
        select(BeltChallenge)
        .where(BeltChallenge.belt_id == belt_id)
        .order_by(BeltChallenge.created_at.desc())
    )
    now = datetime.now(UTC)
    resp = BeltDetailResponse.model_validate(belt)
    resp.challenges = [_challenge_response(c, now) for c in result.scalars().all()]
    return resp


@router.post("/belts/{belt_id}/challenges", response_model=ChallengeResponse, status_code=201)
async def create_challenge(db: DbSession, belt_id: uuid.UUID, body: CreateChallengeRequest):
    challenge = await belt_service.create_challenge(belt_id, body.challenger_id, db)
    return ChallengeResponse.model_validate(challenge)


@router.post("/belts/challenges/{challenge_id}/accept", response_model=ChallengeResponse)
async def accept_challenge(db: DbSession, challenge_id: uuid.UUID, body: ChallengeActionRequest):
    challenge = await belt_service.accept_challenge(challenge_id, body.actor_id, db)
    return ChallengeResponse.model_validate(challenge)


@router.post("/belts/challenges/{challenge_id}/decline", response_model=ChallengeResponse)
async def decline_challenge(db: DbSession, challenge_id: uuid.UUID, body: ChallengeActionRequest):
    """Decline a challenge. Repeating a decline is a no-op that returns the challenge."""
    try:
        challenge = await belt_service.decline_challenge(challenge_id, body.actor_id, db)
    except ChallengeAlreadyDeclinedError:
        logger.info("Challenge already declined", extra={"challenge_id": str(challenge_id)})
        challenge = await db.get(BeltChallenge, challenge_id)
    return ChallengeResponse.model_validate(challenge)


@router.post("/belts/challenges/{challenge_id}/complete", response_model=ChallengeResponse)
async def complete_challenge(db: DbSession, challenge_id: uuid.UUID, body: CompleteChallengeRequest):
    """Settle an accepted challenge once its debate has a winner."""
    challenge = await belt_service.complete_challenge(challenge_id, body.winner_id, db)
    return ChallengeResponse.model_validate(challenge)
