from __future__ import annotations

import uuid

from fastapi import APIRouter
from sqlalchemy import select

from podium.api.schemas.tournament import (
    AdvanceRoundResponse,
    CreateTournamentRequest,
    EliminationResponse,
    MatchResponse,
    MatchResultRequest,
    ParticipantResponse,
    RegisterRequest,
    TournamentDetailResponse,
    TournamentResponse,
)
from podium.db.models.tournament import Tournament, TournamentMatch, TournamentParticipant
from podium.dependencies import DbSession, SettingsDep
from podium.engine.errors import NotFoundError
from podium.engine.progression import display_elimination_reason
from podium.services import tournaments as tournament_service

router = APIRouter(tags=["tournaments"])


def _participant_response(p: TournamentParticipant, display_length: int) -> ParticipantResponse:
    resp = ParticipantResponse.model_validate(p)
    resp.elimination_reason_display = display_elimination_reason(p.elimination_reason, display_length)
    return resp


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
async def create_tournament(db: DbSession, body: CreateTournamentRequest):
    """Create a tournament and open registration."""
    tournament = await tournament_service.create_tournament(
        body.name,
        body.format,
        body.max_participants,
        db,
        reseed_after_round=body.reseed_after_round,
        reseed_method=body.reseed_method,
        elimination_percent=body.elimination_percent,
        prize_pool=body.prize_pool,
        creator_id=body.creator_id,
        with_belt=body.with_belt,
    )
    return TournamentResponse.model_validate(tournament)


@router.get("/tournaments/{tournament_id}", response_model=TournamentDetailResponse)
async def get_tournament(db: DbSession, config: SettingsDep, tournament_id: uuid.UUID):
    """Tournament with its roster and every match so far."""
    tournament = await db.get(Tournament, tournament_id)
    if tournament is None:
        raise NotFoundError("tournament", tournament_id)

    participants = await db.execute(
        select(TournamentParticipant)
        .where(TournamentParticipant.tournament_id == tournament_id)
        .order_by(TournamentParticipant.seed)
    )
    matches = await db.execute(
        select(TournamentMatch)
        .where(TournamentMatch.tournament_id == tournament_id)
        .order_by(TournamentMatch.round, TournamentMatch.position)
    )
    resp = TournamentDetailResponse.model_validate(tournament)
    display_length = config.elimination_reason_display_length
    resp.participants = [_participant_response(p, display_length) for p in participants.scalars().all()]
    resp.matches = [MatchResponse.model_validate(m) for m in matches.scalars().all()]
    return resp


@router.post(
    "/tournaments/{tournament_id}/participants", response_model=ParticipantResponse, status_code=201
)
async def register_participant(
    db: DbSession, config: SettingsDep, tournament_id: uuid.UUID, body: RegisterRequest
):
    participant = await tournament_service.register_participant(
        tournament_id, body.user_id, db, position=body.position
    )
    return _participant_response(participant, config.elimination_reason_display_length)


@router.post("/tournaments/{tournament_id}/start", response_model=TournamentResponse)
async def start_tournament(db: DbSession, tournament_id: uuid.UUID):
    tournament = await tournament_service.start_tournament(tournament_id, db)
    return TournamentResponse.model_validate(tournament)


@router.post("/tournaments/{tournament_id}/cancel", response_model=TournamentResponse)
async def cancel_tournament(db: DbSession, tournament_id: uuid.UUID):
    tournament = await tournament_service.cancel_tournament(tournament_id, db)
    return TournamentResponse.model_validate(tournament)


@router.post("/tournaments/matches/{match_id}/result", response_model=MatchResponse)
async def record_match_result(db: DbSession, match_id: uuid.UUID, body: MatchResultRequest):
    """Record the judged result of one match in the current round."""
    match = await tournament_service.record_match_result(
        match_id,
        db,
        winner_id=body.winner_id,
        participant1_score=body.participant1_score,
        participant2_score=body.participant2_score,
        participant1_breakdown=body.participant1_breakdown,
        participant2_breakdown=body.participant2_breakdown,
        judge_commentary=body.judge_commentary,
        forfeit=body.forfeit,
    )
    return MatchResponse.model_validate(match)


@router.post("/tournaments/{tournament_id}/advance", response_model=AdvanceRoundResponse)
async def advance_round(db: DbSession, tournament_id: uuid.UUID):
    """Close the current round once every match in it is decided."""
    outcome = await tournament_service.advance_round(tournament_id, db)
    tournament = await db.get(Tournament, tournament_id)
    return AdvanceRoundResponse(
        round=outcome.round_number,
        next_round=outcome.next_round,
        advancing=[uuid.UUID(pid) for pid in outcome.advancing],
        eliminations=[
            EliminationResponse(participant_id=uuid.UUID(e.participant_id), round=e.round, reason=e.reason)
            for e in outcome.eliminations
        ],
        completed=outcome.completed,
        champion_participant_id=uuid.UUID(outcome.champion_id) if outcome.champion_id else None,
        tournament=TournamentResponse.model_validate(tournament),
    )
