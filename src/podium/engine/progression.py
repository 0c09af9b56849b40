"""Round-by-round tournament progression for all three formats.

Everything here is pure: the caller hands in the tournament, the matches of
the round being closed and the roster, and gets back a ``RoundOutcome``
describing every write the round implies. Nothing is applied until the whole
round has been validated.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from podium.engine.errors import RoundIncompleteError, StateConflictError, ValidationError
from podium.engine.records import (
    TERMINAL_MATCH_STATUSES,
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

logger = logging.getLogger(__name__)

MATCH_MAX_SCORE = 100
KOTH_MAX_ROUND_SCORE = 300
DEFAULT_ELIMINATION_PERCENT = 25
ALLOWED_SIZES = (4, 8, 16, 32, 64)

_STATUS_ORDER = {
    TournamentStatus.UPCOMING: 0,
    TournamentStatus.REGISTRATION_OPEN: 1,
    TournamentStatus.IN_PROGRESS: 2,
    TournamentStatus.COMPLETED: 3,
}
_TERMINAL_STATUSES = frozenset({TournamentStatus.COMPLETED, TournamentStatus.CANCELLED})


@dataclass
class Elimination:
    participant_id: str
    round: int
    reason: str | None = None


@dataclass
class ParticipantDelta:
    wins: int = 0
    losses: int = 0
    score: float = 0.0


@dataclass
class Pairing:
    position: int
    participant1_id: str
    participant2_id: str | None = None
    is_bye: bool = False


@dataclass
class RoundOutcome:
    round_number: int
    advancing: list[str]
    eliminations: list[Elimination]
    deltas: dict[str, ParticipantDelta] = field(default_factory=dict)
    next_round: int | None = None
    pairings: list[Pairing] = field(default_factory=list)
    completed: bool = False
    champion_id: str | None = None

    @property
    def eliminated_ids(self) -> set[str]:
        return {e.participant_id for e in self.eliminations}


# ── Status and round bookkeeping ─────────────────────────────


def transition_status(current: TournamentStatus, target: TournamentStatus) -> TournamentStatus:
    """Validate a tournament status change. Status only ever moves forward."""
    current = TournamentStatus(current)
    target = TournamentStatus(target)
    if current in _TERMINAL_STATUSES:
        raise StateConflictError("tournament", current, f"move to {target}")
    if target == TournamentStatus.CANCELLED:
        return target
    if _STATUS_ORDER[target] <= _STATUS_ORDER[current]:
        raise StateConflictError("tournament", current, f"move to {target}")
    return target


def bracket_total_rounds(participant_count: int) -> int:
    if participant_count < 2:
        raise ValidationError("A tournament needs at least 2 participants")
    return math.ceil(math.log2(participant_count))


def koth_elimination_count(active: int, percent: int) -> int:
    """How many participants a non-final King of the Hill round removes."""
    if active <= 1:
        return 0
    return min(active - 1, max(1, math.ceil(active * percent / 100)))


def koth_total_rounds(participant_count: int, percent: int = DEFAULT_ELIMINATION_PERCENT) -> int:
    if participant_count < 2:
        raise ValidationError("A tournament needs at least 2 participants")
    remaining = participant_count
    rounds = 0
    while remaining > 1:
        remaining -= koth_elimination_count(remaining, percent)
        rounds += 1
    return rounds


def total_rounds_for(
    fmt: TournamentFormat, participant_count: int, elimination_percent: int = DEFAULT_ELIMINATION_PERCENT
) -> int:
    if fmt == TournamentFormat.KING_OF_THE_HILL:
        return koth_total_rounds(participant_count, elimination_percent)
    return bracket_total_rounds(participant_count)


def is_round_complete(matches: list[MatchRecord]) -> bool:
    """A round is complete once it has matches and all of them are terminal."""
    return bool(matches) and all(m.status in TERMINAL_MATCH_STATUSES for m in matches)


def display_elimination_reason(reason: str | None, limit: int = 140) -> str | None:
    """Shorten an elimination reason for listings. Stored reasons stay untouched."""
    if reason is None or len(reason) <= limit:
        return reason
    return reason[: max(limit - 3, 0)].rstrip() + "..."


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.1f}"


# ── Result validation ────────────────────────────────────────


def validate_score(score: float | None, max_score: float, label: str = "score") -> None:
    if score is None:
        return
    if score < 0 or score > max_score:
        raise ValidationError(f"{label} {score} outside 0-{_fmt(max_score)}")


def validate_breakdown(breakdown: dict | None, max_score: float = MATCH_MAX_SCORE) -> dict[str, float] | None:
    """Check a per-criterion score map (criterion name -> points)."""
    if breakdown is None:
        return None
    if not isinstance(breakdown, dict):
        raise ValidationError("Score breakdown must be a mapping of criterion to points")
    cleaned: dict[str, float] = {}
    for key, value in breakdown.items():
        if not isinstance(key, str) or not key:
            raise ValidationError("Score breakdown keys must be non-empty strings")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"Score breakdown value for '{key}' is not a number")
        validate_score(value, max_score, f"breakdown '{key}'")
        cleaned[key] = float(value)
    return cleaned


def check_match_result(
    fmt: TournamentFormat,
    match: MatchRecord,
    *,
    winner_id: str | None,
    participant1_score: float | None,
    participant2_score: float | None,
    forfeit: bool = False,
    is_final_round: bool = False,
    match_max_score: float = MATCH_MAX_SCORE,
    koth_max_round_score: float = KOTH_MAX_ROUND_SCORE,
) -> MatchStatus:
    """Validate a single result before it is recorded. Returns the new match status."""
    if match.status in TERMINAL_MATCH_STATUSES:
        raise StateConflictError("match", match.status, "record a result for")

    max_score = koth_max_round_score if fmt == TournamentFormat.KING_OF_THE_HILL else match_max_score
    validate_score(participant1_score, max_score, "participant1 score")
    validate_score(participant2_score, max_score, "participant2 score")

    if participant2_score is not None and match.participant2_id is None:
        raise ValidationError("Match has no second participant to score")
    if winner_id is not None and winner_id not in match.participant_ids:
        raise ValidationError(f"Winner {winner_id} did not play match {match.id}")

    if fmt == TournamentFormat.KING_OF_THE_HILL:
        if winner_id is not None:
            raise ValidationError("King of the Hill heats have no winner")
        if not forfeit and participant1_score is None:
            raise ValidationError("King of the Hill heat needs a score")
        return MatchStatus.FORFEITED if forfeit else MatchStatus.COMPLETED

    if forfeit:
        if winner_id is None and len(match.participant_ids) == 2:
            raise ValidationError("A forfeit between two participants must name the winner")
        return MatchStatus.FORFEITED

    needs_winner = fmt == TournamentFormat.BRACKET or is_final_round
    if needs_winner and winner_id is None:
        if participant1_score is not None and participant1_score == participant2_score:
            raise ValidationError("Scores are tied and no winner was declared")
        raise ValidationError("A winner is required for this match")
    if fmt == TournamentFormat.CHAMPIONSHIP and (
        participant1_score is None or (match.participant2_id is not None and participant2_score is None)
    ):
        raise ValidationError("Championship matches need a score for every participant")
    return MatchStatus.COMPLETED


def _validate_round(
    tournament: TournamentRecord,
    matches: list[MatchRecord],
    by_id: dict[str, ParticipantRecord],
    max_score: float,
) -> list[str]:
    pending = [m for m in matches if m.status not in TERMINAL_MATCH_STATUSES]
    if not matches or pending:
        raise RoundIncompleteError(tournament.current_round, len(pending))

    active = [p.id for p in by_id.values() if p.status == ParticipantStatus.ACTIVE]
    seen: set[str] = set()
    for m in matches:
        if m.round != tournament.current_round:
            raise ValidationError(
                f"Match {m.id} belongs to round {m.round}, not {tournament.current_round}"
            )
        for pid in m.participant_ids:
            p = by_id.get(pid)
            if p is None or p.status != ParticipantStatus.ACTIVE:
                raise ValidationError(f"Match {m.id} names participant {pid} who is not active")
            if pid in seen:
                raise ValidationError(f"Participant {pid} plays more than one match this round")
            seen.add(pid)
        if m.winner_id is not None and m.winner_id not in m.participant_ids:
            raise ValidationError(f"Winner {m.winner_id} did not play match {m.id}")
        validate_score(m.participant1_score, max_score, f"match {m.id} participant1 score")
        validate_score(m.participant2_score, max_score, f"match {m.id} participant2 score")

    missing = [pid for pid in active if pid not in seen]
    if missing:
        raise ValidationError(f"Active participants without a match this round: {sorted(missing)}")
    return active


def _match_winner(m: MatchRecord) -> str:
    """Who advances from a bracket-style match. Never guesses on a tie."""
    if m.status == MatchStatus.BYE or len(m.participant_ids) == 1:
        if m.participant1_id is None and m.participant2_id is None:
            raise ValidationError(f"Match {m.id} has no participants")
        return m.participant_ids[0]
    if m.winner_id is None:
        if m.participant1_score is not None and m.participant1_score == m.participant2_score:
            raise ValidationError(f"Match {m.id} is tied and has no declared winner")
        raise ValidationError(f"Match {m.id} has no declared winner")
    return m.winner_id


def _record_win_loss(m: MatchRecord, winner: str | None, deltas: dict[str, ParticipantDelta]) -> None:
    if winner is None or m.status == MatchStatus.BYE:
        return
    deltas[winner].wins += 1
    for pid in m.participant_ids:
        if pid != winner:
            deltas[pid].losses += 1


# ── Ordering and pairing ─────────────────────────────────────


def reseed_order(
    participants: list[ParticipantRecord],
    method: ReseedMethod,
    cumulative: dict[str, float] | None = None,
) -> list[ParticipantRecord]:
    """Order participants for re-pairing. Depends only on the set given."""
    cumulative = cumulative or {}
    method = ReseedMethod(method)
    if method == ReseedMethod.SCORE:
        return sorted(participants, key=lambda p: (-cumulative.get(p.id, p.cumulative_score), p.seed))
    if method == ReseedMethod.ELO_BASED:
        return sorted(participants, key=lambda p: (-p.elo_at_start, p.seed))
    return sorted(participants, key=lambda p: p.seed)


def pair_participants(ordered: list[ParticipantRecord], fold: bool) -> list[Pairing]:
    """Pair an ordered list. ``fold`` pairs first vs last, otherwise neighbours meet.

    With an odd count the participant with the lowest seed number gets a bye.
    """
    pool = list(ordered)
    bye: ParticipantRecord | None = None
    if len(pool) % 2 == 1:
        bye = min(pool, key=lambda p: p.seed)
        pool.remove(bye)

    half = len(pool) // 2
    if fold:
        pairs = [(pool[i], pool[len(pool) - 1 - i]) for i in range(half)]
    else:
        pairs = [(pool[2 * i], pool[2 * i + 1]) for i in range(half)]

    pairings = [Pairing(position=i, participant1_id=a.id, participant2_id=b.id) for i, (a, b) in enumerate(pairs)]
    if bye is not None:
        pairings.append(Pairing(position=len(pairings), participant1_id=bye.id, is_bye=True))
    return pairings


def pair_positions(pro: list[ParticipantRecord], con: list[ParticipantRecord]) -> list[Pairing]:
    """Championship pairing: PRO[i] meets CON[n-1-i]. Unmatched leftovers get byes."""
    n = min(len(pro), len(con))
    con_side = con[:n]
    pairings = [
        Pairing(position=i, participant1_id=pro[i].id, participant2_id=con_side[n - 1 - i].id)
        for i in range(n)
    ]
    for leftover in sorted(pro[n:] + con[n:], key=lambda p: p.seed):
        pairings.append(Pairing(position=len(pairings), participant1_id=leftover.id, is_bye=True))
    return pairings


def heat_pairings(ordered: list[ParticipantRecord]) -> list[Pairing]:
    return [Pairing(position=i, participant1_id=p.id) for i, p in enumerate(ordered)]


def _split_positions(participants: list[ParticipantRecord]) -> tuple[list[ParticipantRecord], list[ParticipantRecord]]:
    pro, con = [], []
    for p in participants:
        if p.selected_position == Position.PRO:
            pro.append(p)
        elif p.selected_position == Position.CON:
            con.append(p)
        else:
            raise ValidationError(f"Participant {p.id} has no debate position")
    return pro, con


def opening_pairings(tournament: TournamentRecord, participants: list[ParticipantRecord]) -> list[Pairing]:
    """Round 1 pairings: seed 1 vs seed N, PRO vs CON, or one heat each."""
    active = sorted(
        (p for p in participants if p.status == ParticipantStatus.ACTIVE), key=lambda p: p.seed
    )
    if len(active) < 2:
        raise ValidationError("A tournament needs at least 2 participants")

    if tournament.format == TournamentFormat.KING_OF_THE_HILL:
        return heat_pairings(active)
    if tournament.format == TournamentFormat.CHAMPIONSHIP:
        pro, con = _split_positions(active)
        if len(pro) != len(con):
            raise ValidationError(f"Positions are unbalanced: {len(pro)} PRO vs {len(con)} CON")
        return pair_positions(pro, con)
    return pair_participants(active, fold=True)


# ── Per-format advancement ───────────────────────────────────


def _advance_bracket(
    tournament: TournamentRecord,
    matches: list[MatchRecord],
    deltas: dict[str, ParticipantDelta],
) -> tuple[list[str], list[Elimination]]:
    advancing: list[str] = []
    eliminations: list[Elimination] = []
    for m in sorted(matches, key=lambda m: m.position):
        winner = _match_winner(m)
        _record_win_loss(m, winner, deltas)
        advancing.append(winner)
        for pid in m.participant_ids:
            if pid != winner:
                eliminations.append(Elimination(pid, tournament.current_round))
    return advancing, eliminations


def championship_cutoff(max_participants: int, round_number: int) -> int:
    """Participants advancing per position group after ``round_number``."""
    return max(1, max_participants // 2 ** (round_number + 1))


def _advance_championship(
    tournament: TournamentRecord,
    matches: list[MatchRecord],
    by_id: dict[str, ParticipantRecord],
    deltas: dict[str, ParticipantDelta],
) -> tuple[list[str], list[Elimination]]:
    round_number = tournament.current_round
    scores: dict[str, float | None] = {}
    forfeiters: set[str] = set()
    byes: list[str] = []

    for m in matches:
        if m.status == MatchStatus.BYE:
            # Unopposed: advances without being ranked
            byes.extend(m.participant_ids)
            continue
        if m.status == MatchStatus.FORFEITED:
            if len(m.participant_ids) == 2 and m.winner_id is None:
                raise ValidationError(f"Forfeited match {m.id} must name the participant who stayed")
            forfeiters.update(pid for pid in m.participant_ids if m.winner_id and pid != m.winner_id)
        elif m.status == MatchStatus.COMPLETED:
            for pid in m.participant_ids:
                if m.score_for(pid) is None:
                    raise ValidationError(f"Championship match {m.id} is missing a score for {pid}")
        _record_win_loss(m, m.winner_id, deltas)
        for pid in m.participant_ids:
            scores[pid] = m.score_for(pid)

    cutoff = championship_cutoff(tournament.max_participants, round_number)
    pro, con = _split_positions([by_id[pid] for pid in scores])
    bye_pro, bye_con = _split_positions([by_id[pid] for pid in byes])
    advancing: list[str] = []
    eliminations: list[Elimination] = []
    for position, group, unopposed in ((Position.PRO, pro, bye_pro), (Position.CON, con, bye_con)):
        ranked = sorted(
            group,
            key=lambda p: (
                p.id in forfeiters,
                scores[p.id] is None,
                -(scores[p.id] or 0.0),
                -(p.cumulative_score + deltas[p.id].score),
                p.seed,
            ),
        )
        for rank, p in enumerate(ranked, start=1):
            if rank <= cutoff and p.id not in forfeiters:
                advancing.append(p.id)
                continue
            if p.id in forfeiters:
                reason = f"Forfeited round {round_number}"
            else:
                score = scores[p.id]
                shown = "no score" if score is None else f"score {_fmt(score)}"
                reason = (
                    f"Ranked {rank} of {len(ranked)} {position} debaters in round {round_number} "
                    f"({shown}, cutoff {cutoff})"
                )
            eliminations.append(Elimination(p.id, round_number, reason))
        advancing.extend(p.id for p in unopposed)
    return advancing, eliminations


def _advance_koth(
    tournament: TournamentRecord,
    matches: list[MatchRecord],
    by_id: dict[str, ParticipantRecord],
    deltas: dict[str, ParticipantDelta],
    max_score: float,
) -> tuple[list[str], list[Elimination]]:
    round_number = tournament.current_round
    heats: dict[str, MatchRecord] = {}
    for m in matches:
        if m.participant2_id is not None or m.participant1_id is None:
            raise ValidationError(f"King of the Hill heat {m.id} must name exactly one participant")
        if m.status == MatchStatus.COMPLETED and m.participant1_score is None:
            raise ValidationError(f"King of the Hill heat {m.id} has no score")
        heats[m.participant1_id] = m

    forfeiters = [pid for pid, m in heats.items() if m.status == MatchStatus.FORFEITED]
    survivors = [by_id[pid] for pid in heats if pid not in forfeiters]
    total = {p.id: p.cumulative_score + deltas[p.id].score for p in survivors}
    round_score = {p.id: heats[p.id].participant1_score or 0.0 for p in survivors}
    ranked = sorted(survivors, key=lambda p: (-total[p.id], -round_score[p.id], p.seed))

    if round_number >= tournament.total_rounds:
        to_remove = max(len(ranked) - 1, 0)
    else:
        scheduled = koth_elimination_count(len(heats), tournament.elimination_percent)
        to_remove = min(max(scheduled - len(forfeiters), 0), max(len(ranked) - 1, 0))

    keep = len(ranked) - to_remove
    advancing = [p.id for p in ranked[:keep]]
    eliminations: list[Elimination] = []
    for rank, p in enumerate(ranked[keep:], start=keep + 1):
        parts = [
            f"Finished {rank} of {len(heats)} in round {round_number}.",
            f"Round Score: {_fmt(round_score[p.id])}/{_fmt(max_score)}.",
            f"Total Score: {_fmt(total[p.id])}.",
        ]
        commentary = (heats[p.id].judge_commentary or "").strip()
        if commentary:
            parts.append(commentary)
        eliminations.append(Elimination(p.id, round_number, " ".join(parts)))
    for pid in sorted(forfeiters, key=lambda pid: by_id[pid].seed):
        eliminations.append(Elimination(pid, round_number, f"Forfeited round {round_number}"))
    return advancing, eliminations


def _derive_champion(matches: list[MatchRecord], advancing: list[str]) -> str:
    """Final match winner, else the last participant standing."""
    if len(advancing) != 1:
        raise ValidationError(f"Final round left {len(advancing)} participants standing")
    decided = [m.winner_id for m in matches if m.winner_id is not None and m.status != MatchStatus.BYE]
    if len(decided) == 1 and decided[0] != advancing[0]:
        raise ValidationError(f"Final match winner {decided[0]} is not the last participant standing")
    return advancing[0]


def _next_pairings(
    tournament: TournamentRecord,
    advancing: list[str],
    by_id: dict[str, ParticipantRecord],
    deltas: dict[str, ParticipantDelta],
) -> list[Pairing]:
    cumulative = {pid: by_id[pid].cumulative_score + deltas[pid].score for pid in advancing}
    players = [by_id[pid] for pid in advancing]

    if tournament.format == TournamentFormat.KING_OF_THE_HILL:
        if tournament.reseed_after_round:
            players = reseed_order(players, tournament.reseed_method, cumulative)
        else:
            players = sorted(players, key=lambda p: p.seed)
        return heat_pairings(players)

    if tournament.format == TournamentFormat.CHAMPIONSHIP:
        pro, con = _split_positions(players)
        if tournament.reseed_after_round:
            pro = reseed_order(pro, tournament.reseed_method, cumulative)
            con = reseed_order(con, tournament.reseed_method, cumulative)
        return pair_positions(pro, con)

    if tournament.reseed_after_round:
        return pair_participants(reseed_order(players, tournament.reseed_method, cumulative), fold=True)
    return pair_participants(players, fold=False)


def advance_tournament_round(
    tournament: TournamentRecord,
    matches: list[MatchRecord],
    participants: list[ParticipantRecord],
    *,
    match_max_score: float = MATCH_MAX_SCORE,
    koth_max_round_score: float = KOTH_MAX_ROUND_SCORE,
) -> RoundOutcome:
    """Close the current round and compute the next one.

    Raises RoundIncompleteError while any match is still open, ValidationError
    on inconsistent results and StateConflictError if the tournament is not
    running.
    """
    if tournament.status != TournamentStatus.IN_PROGRESS:
        raise StateConflictError("tournament", tournament.status, "advance")
    if tournament.current_round < 1 or tournament.current_round > tournament.total_rounds:
        raise ValidationError(
            f"Round {tournament.current_round} is outside 1-{tournament.total_rounds}"
        )

    fmt = TournamentFormat(tournament.format)
    max_score = koth_max_round_score if fmt == TournamentFormat.KING_OF_THE_HILL else match_max_score
    by_id = {p.id: p for p in participants}
    active = _validate_round(tournament, matches, by_id, max_score)

    deltas = {pid: ParticipantDelta() for pid in active}
    for m in matches:
        for pid in m.participant_ids:
            deltas[pid].score += m.score_for(pid) or 0.0

    is_final = tournament.current_round >= tournament.total_rounds
    if fmt == TournamentFormat.BRACKET or (fmt == TournamentFormat.CHAMPIONSHIP and is_final):
        advancing, eliminations = _advance_bracket(tournament, matches, deltas)
    elif fmt == TournamentFormat.CHAMPIONSHIP:
        advancing, eliminations = _advance_championship(tournament, matches, by_id, deltas)
    else:
        advancing, eliminations = _advance_koth(tournament, matches, by_id, deltas, max_score)

    outcome = RoundOutcome(
        round_number=tournament.current_round,
        advancing=advancing,
        eliminations=eliminations,
        deltas=deltas,
    )

    if is_final or len(advancing) <= 1:
        outcome.completed = True
        outcome.champion_id = _derive_champion(matches, advancing)
    else:
        outcome.next_round = tournament.current_round + 1
        outcome.pairings = _next_pairings(tournament, advancing, by_id, deltas)

    logger.debug(
        "Round computed",
        extra={
            "tournament_id": tournament.id,
            "round": tournament.current_round,
            "advancing": len(advancing),
            "eliminated": len(eliminations),
            "completed": outcome.completed,
        },
    )
    return outcome


def final_standings(participants: list[ParticipantRecord], champion_id: str | None) -> list[ParticipantRecord]:
    """Order participants for prize payout: champion, then who lasted longest."""

    def key(p: ParticipantRecord):
        lasted = p.elimination_round if p.elimination_round is not None else math.inf
        return (p.id != champion_id, -lasted, -p.wins, -p.cumulative_score, p.seed)

    return sorted(participants, key=key)
