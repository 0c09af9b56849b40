"""Tournament lifecycle backed by the database.

Each operation loads the rows it needs under ``SELECT ... FOR UPDATE``, hands
plain records to ``podium.engine.progression`` and writes the full result in
one commit. The engine validates the whole round before anything is written.
"""
from __future__ import annotations

import logging
import time
import uuid
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from podium.config import settings
from podium.db.models.belt import Belt
from podium.db.models.tournament import Tournament, TournamentMatch, TournamentParticipant
from podium.db.models.user import User
from podium.engine.coin_economy import compute_prize_distribution, tournament_belt_cost
from podium.engine.errors import NotFoundError, StateConflictError, ValidationError
from podium.engine.progression import (
    ALLOWED_SIZES,
    RoundOutcome,
    advance_tournament_round,
    check_match_result,
    final_standings,
    opening_pairings,
    total_rounds_for,
    transition_status,
    validate_breakdown,
)
from podium.engine.records import (
    BeltStatus,
    BeltType,
    CoinTransactionType,
    MatchRecord,
    MatchStatus,
    ParticipantRecord,
    ParticipantStatus,
    Position,
    ReseedMethod,
    TournamentFormat,
    TournamentRecord,
    TournamentStatus,
)
from podium.monitoring.metrics import (
    participants_eliminated_total,
    round_advance_duration_seconds,
    rounds_advanced_total,
    tournaments_active,
    tournaments_completed_total,
)
from podium.services.belts import get_belt_rules
from podium.services.coins import add_coins, deduct_coins

logger = logging.getLogger(__name__)

_REGISTRATION_STATUSES = {TournamentStatus.UPCOMING, TournamentStatus.REGISTRATION_OPEN}


# ── Row <-> record conversion ────────────────────────────────


def to_tournament_record(t: Tournament) -> TournamentRecord:
    return TournamentRecord(
        id=str(t.id),
        format=TournamentFormat(t.format),
        status=TournamentStatus(t.status),
        current_round=t.current_round,
        total_rounds=t.total_rounds,
        max_participants=t.max_participants,
        reseed_after_round=t.reseed_after_round,
        reseed_method=ReseedMethod(t.reseed_method),
        elimination_percent=t.elimination_percent,
    )


def to_participant_record(p: TournamentParticipant) -> ParticipantRecord:
    return ParticipantRecord(
        id=str(p.id),
        seed=p.seed,
        status=ParticipantStatus(p.status),
        selected_position=Position(p.selected_position) if p.selected_position else None,
        cumulative_score=p.cumulative_score,
        wins=p.wins,
        losses=p.losses,
        elo_at_start=p.elo_at_start,
        elimination_round=p.elimination_round,
        elimination_reason=p.elimination_reason,
    )


def _opt_str(value: uuid.UUID | None) -> str | None:
    return str(value) if value is not None else None


def to_match_record(m: TournamentMatch) -> MatchRecord:
    return MatchRecord(
        id=str(m.id),
        round=m.round,
        position=m.position,
        participant1_id=_opt_str(m.participant1_id),
        participant2_id=_opt_str(m.participant2_id),
        winner_id=_opt_str(m.winner_id),
        status=MatchStatus(m.status),
        participant1_score=m.participant1_score,
        participant2_score=m.participant2_score,
        judge_commentary=m.judge_commentary,
    )


# ── Loaders ──────────────────────────────────────────────────


async def _load_tournament(tournament_id: uuid.UUID, db_session: AsyncSession) -> Tournament:
    result = await db_session.execute(
        select(Tournament).where(Tournament.id == tournament_id).with_for_update()
    )
    tournament = result.scalar_one_or_none()
    if tournament is None:
        raise NotFoundError("tournament", tournament_id)
    return tournament


async def get_participants(tournament_id: uuid.UUID, db_session: AsyncSession) -> list[TournamentParticipant]:
    result = await db_session.execute(
        select(TournamentParticipant)
        .where(TournamentParticipant.tournament_id == tournament_id)
        .order_by(TournamentParticipant.seed)
        .with_for_update()
    )
    return list(result.scalars().all())


async def get_round_matches(
    tournament_id: uuid.UUID, round_number: int, db_session: AsyncSession
) -> list[TournamentMatch]:
    result = await db_session.execute(
        select(TournamentMatch)
        .where(TournamentMatch.tournament_id == tournament_id, TournamentMatch.round == round_number)
        .order_by(TournamentMatch.position)
    )
    return list(result.scalars().all())


# ── Setup ────────────────────────────────────────────────────


async def create_tournament(
    name: str,
    fmt: TournamentFormat,
    max_participants: int,
    db_session: AsyncSession,
    *,
    reseed_after_round: bool = False,
    reseed_method: ReseedMethod = ReseedMethod.ELO_BASED,
    elimination_percent: int | None = None,
    prize_pool: int = 0,
    creator_id: uuid.UUID | None = None,
    with_belt: bool = False,
) -> Tournament:
    """Create a tournament open for registration.

    With ``with_belt`` the creator pays the tournament belt cost once, now,
    and a vacant TOURNAMENT belt is attached for the champion.
    """
    fmt = TournamentFormat(fmt)
    if max_participants not in ALLOWED_SIZES:
        raise ValidationError(f"max_participants must be one of {list(ALLOWED_SIZES)}")
    percent = settings.koth_elimination_percent if elimination_percent is None else elimination_percent
    if not 1 <= percent <= 99:
        raise ValidationError(f"elimination_percent must be between 1 and 99, got {percent}")
    if prize_pool < 0:
        raise ValidationError("prize_pool must be >= 0")
    if with_belt and creator_id is None:
        raise ValidationError("A belt tournament needs a creator to pay the belt cost")

    tournament = Tournament(
        name=name,
        format=str(fmt),
        status=str(transition_status(TournamentStatus.UPCOMING, TournamentStatus.REGISTRATION_OPEN)),
        max_participants=max_participants,
        reseed_after_round=reseed_after_round,
        reseed_method=str(ReseedMethod(reseed_method)),
        elimination_percent=percent,
        prize_pool=prize_pool,
        creator_id=creator_id,
    )
    db_session.add(tournament)
    await db_session.flush()

    if with_belt:
        rules = await get_belt_rules(BeltType.TOURNAMENT, db_session)
        tournament.belt_cost = tournament_belt_cost(max_participants, rules)
        await deduct_coins(
            creator_id, tournament.belt_cost, CoinTransactionType.BELT_TOURNAMENT_CREATION, db_session,
            description=f"Belt tournament: {name}", tournament_id=tournament.id,
        )
        db_session.add(
            Belt(
                name=f"{name} Champion",
                type=str(BeltType.TOURNAMENT),
                status=str(BeltStatus.VACANT),
                coin_value=tournament.belt_cost,
                tournament_id=tournament.id,
            )
        )

    await db_session.commit()
    logger.info(
        "Tournament created",
        extra={"tournament_id": str(tournament.id), "format": str(fmt), "size": max_participants},
    )
    return tournament


async def register_participant(
    tournament_id: uuid.UUID,
    user_id: uuid.UUID,
    db_session: AsyncSession,
    position: Position | None = None,
) -> TournamentParticipant:
    """Register a user and assign the next seed."""
    tournament = await _load_tournament(tournament_id, db_session)
    if TournamentStatus(tournament.status) not in _REGISTRATION_STATUSES:
        raise StateConflictError("tournament", tournament.status, "register for")

    user = await db_session.get(User, user_id)
    if user is None:
        raise NotFoundError("user", user_id)

    participants = await get_participants(tournament_id, db_session)
    if any(p.user_id == user_id for p in participants):
        raise ValidationError("User is already registered for this tournament")
    if len(participants) >= tournament.max_participants:
        raise ValidationError("Tournament is full")

    if tournament.format == TournamentFormat.CHAMPIONSHIP:
        if position is None:
            raise ValidationError("Championship registration requires a PRO or CON position")
        position = Position(position)
        taken = sum(1 for p in participants if p.selected_position == position)
        if taken >= tournament.max_participants // 2:
            raise ValidationError(f"All {position} slots are taken")
    else:
        position = None

    participant = TournamentParticipant(
        tournament_id=tournament.id,
        user_id=user.id,
        seed=max((p.seed for p in participants), default=0) + 1,
        status=str(ParticipantStatus.ACTIVE),
        selected_position=str(position) if position else None,
        elo_at_start=user.elo_rating,
    )
    db_session.add(participant)
    await db_session.commit()
    logger.info(
        "Participant registered",
        extra={"tournament_id": str(tournament.id), "user_id": str(user.id), "seed": participant.seed},
    )
    return participant


def _add_round_matches(tournament: Tournament, round_number: int, pairings, by_id, db_session: AsyncSession) -> None:
    for pairing in pairings:
        p2 = by_id[pairing.participant2_id].id if pairing.participant2_id else None
        db_session.add(
            TournamentMatch(
                tournament_id=tournament.id,
                round=round_number,
                position=pairing.position,
                participant1_id=by_id[pairing.participant1_id].id,
                participant2_id=p2,
                status=str(MatchStatus.BYE if pairing.is_bye else MatchStatus.SCHEDULED),
            )
        )


async def start_tournament(
    tournament_id: uuid.UUID,
    db_session: AsyncSession,
    now: datetime | None = None,
) -> Tournament:
    """Close registration, fix total_rounds and write the round 1 matches."""
    now = now or datetime.now(UTC)
    tournament = await _load_tournament(tournament_id, db_session)
    new_status = transition_status(TournamentStatus(tournament.status), TournamentStatus.IN_PROGRESS)

    participants = await get_participants(tournament_id, db_session)
    if len(participants) < 2:
        raise ValidationError("A tournament needs at least 2 participants to start")
    if tournament.format == TournamentFormat.CHAMPIONSHIP and len(participants) != tournament.max_participants:
        raise ValidationError("A championship needs a full field to start")

    tournament.total_rounds = total_rounds_for(
        TournamentFormat(tournament.format), len(participants), tournament.elimination_percent
    )
    tournament.current_round = 1
    tournament.status = str(new_status)
    tournament.started_at = now

    record = to_tournament_record(tournament)
    pairings = opening_pairings(record, [to_participant_record(p) for p in participants])
    _add_round_matches(tournament, 1, pairings, {str(p.id): p for p in participants}, db_session)

    await db_session.commit()
    tournaments_active.inc()
    logger.info(
        "Tournament started",
        extra={
            "tournament_id": str(tournament.id),
            "participants": len(participants),
            "total_rounds": tournament.total_rounds,
        },
    )
    return tournament


async def cancel_tournament(tournament_id: uuid.UUID, db_session: AsyncSession) -> Tournament:
    tournament = await _load_tournament(tournament_id, db_session)
    was_running = tournament.status == TournamentStatus.IN_PROGRESS
    tournament.status = str(transition_status(TournamentStatus(tournament.status), TournamentStatus.CANCELLED))
    await db_session.commit()
    if was_running:
        tournaments_active.dec()
    logger.info("Tournament cancelled", extra={"tournament_id": str(tournament.id)})
    return tournament


# ── Results ──────────────────────────────────────────────────


async def record_match_result(
    match_id: uuid.UUID,
    db_session: AsyncSession,
    *,
    winner_id: uuid.UUID | None = None,
    participant1_score: float | None = None,
    participant2_score: float | None = None,
    participant1_breakdown: dict | None = None,
    participant2_breakdown: dict | None = None,
    judge_commentary: str | None = None,
    forfeit: bool = False,
    now: datetime | None = None,
) -> TournamentMatch:
    now = now or datetime.now(UTC)
    result = await db_session.execute(
        select(TournamentMatch).where(TournamentMatch.id == match_id).with_for_update()
    )
    match = result.scalar_one_or_none()
    if match is None:
        raise NotFoundError("match", match_id)

    tournament = await _load_tournament(match.tournament_id, db_session)
    if tournament.status != TournamentStatus.IN_PROGRESS:
        raise StateConflictError("tournament", tournament.status, "record results for")
    if match.round != tournament.current_round:
        raise StateConflictError("match", f"round {match.round}", "record a result for")

    fmt = TournamentFormat(tournament.format)
    status = check_match_result(
        fmt,
        to_match_record(match),
        winner_id=_opt_str(winner_id),
        participant1_score=participant1_score,
        participant2_score=participant2_score,
        forfeit=forfeit,
        is_final_round=tournament.current_round >= tournament.total_rounds,
        match_max_score=settings.match_max_score,
        koth_max_round_score=settings.koth_max_round_score,
    )
    max_score = settings.koth_max_round_score if fmt == TournamentFormat.KING_OF_THE_HILL else settings.match_max_score

    match.winner_id = winner_id
    match.participant1_score = participant1_score
    match.participant2_score = participant2_score
    match.participant1_breakdown = validate_breakdown(participant1_breakdown, max_score)
    match.participant2_breakdown = validate_breakdown(participant2_breakdown, max_score)
    match.judge_commentary = judge_commentary
    match.status = str(status)
    match.completed_at = now
    await db_session.commit()
    logger.info(
        "Match result recorded",
        extra={"match_id": str(match.id), "status": str(status), "round": match.round},
    )
    return match


# ── Advancement ──────────────────────────────────────────────


async def _award_prizes(
    tournament: Tournament,
    participants: list[TournamentParticipant],
    champion: TournamentParticipant,
    db_session: AsyncSession,
) -> None:
    if tournament.prize_pool <= 0:
        return
    standings = final_standings([to_participant_record(p) for p in participants], str(champion.id))
    by_id = {str(p.id): p for p in participants}
    prizes = compute_prize_distribution(tournament.prize_pool, settings.prize_distribution_list)
    for place, (record, amount) in enumerate(zip(standings, prizes), start=1):
        await add_coins(
            by_id[record.id].user_id, amount, CoinTransactionType.TOURNAMENT_PRIZE, db_session,
            description=f"{tournament.name}: place {place}", tournament_id=tournament.id,
        )


async def _award_tournament_belt(
    tournament: Tournament, champion: TournamentParticipant, now: datetime, db_session: AsyncSession
) -> None:
    result = await db_session.execute(
        select(Belt).where(Belt.tournament_id == tournament.id).with_for_update()
    )
    belt = result.scalar_one_or_none()
    if belt is None or belt.holder_id is not None:
        return
    belt.holder_id = champion.user_id
    belt.status = str(BeltStatus.ACTIVE)
    belt.became_holder_at = now
    belt.last_defended_at = now
    logger.info(
        "Tournament belt awarded",
        extra={"belt_id": str(belt.id), "tournament_id": str(tournament.id), "user_id": str(champion.user_id)},
    )


async def advance_round(
    tournament_id: uuid.UUID,
    db_session: AsyncSession,
    now: datetime | None = None,
) -> RoundOutcome:
    """Close the current round: eliminate, accumulate, pair the next round or crown a champion."""
    started = time.monotonic()
    now = now or datetime.now(UTC)
    tournament = await _load_tournament(tournament_id, db_session)
    participants = await get_participants(tournament_id, db_session)
    matches = await get_round_matches(tournament_id, tournament.current_round, db_session)

    outcome = advance_tournament_round(
        to_tournament_record(tournament),
        [to_match_record(m) for m in matches],
        [to_participant_record(p) for p in participants],
        match_max_score=settings.match_max_score,
        koth_max_round_score=settings.koth_max_round_score,
    )

    by_id = {str(p.id): p for p in participants}
    for pid, delta in outcome.deltas.items():
        p = by_id[pid]
        p.wins += delta.wins
        p.losses += delta.losses
        p.cumulative_score += delta.score
    for elimination in outcome.eliminations:
        p = by_id[elimination.participant_id]
        if p.elimination_round is not None:
            continue
        p.status = str(ParticipantStatus.ELIMINATED)
        p.elimination_round = elimination.round
        p.elimination_reason = elimination.reason

    fmt = str(tournament.format)
    if outcome.completed:
        champion = by_id[outcome.champion_id]
        tournament.status = str(transition_status(TournamentStatus(tournament.status), TournamentStatus.COMPLETED))
        tournament.champion_id = champion.user_id
        tournament.completed_at = now
        await _award_prizes(tournament, participants, champion, db_session)
        await _award_tournament_belt(tournament, champion, now, db_session)
    else:
        tournament.current_round = outcome.next_round
        _add_round_matches(tournament, outcome.next_round, outcome.pairings, by_id, db_session)

    await db_session.commit()

    rounds_advanced_total.labels(format=fmt).inc()
    participants_eliminated_total.labels(format=fmt).inc(len(outcome.eliminations))
    round_advance_duration_seconds.observe(time.monotonic() - started)
    if outcome.completed:
        tournaments_completed_total.labels(format=fmt).inc()
        tournaments_active.dec()
        logger.info(
            "Tournament completed",
            extra={
                "tournament_id": str(tournament.id),
                "champion_user_id": str(tournament.champion_id),
                "rounds": outcome.round_number,
            },
        )
    else:
        logger.info(
            "Round advanced",
            extra={
                "tournament_id": str(tournament.id),
                "round": outcome.round_number,
                "next_round": outcome.next_round,
                "advancing": len(outcome.advancing),
                "eliminated": len(outcome.eliminations),
            },
        )
    return outcome
