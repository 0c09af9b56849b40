"""Unit tests for KING_OF_THE_HILL advancement (cumulative-score elimination)."""
from __future__ import annotations

import pytest

from podium.engine.errors import ValidationError
from podium.engine.progression import (
    advance_tournament_round,
    koth_elimination_count,
    koth_total_rounds,
    opening_pairings,
)
from podium.engine.records import (
    MatchRecord,
    MatchStatus,
    ParticipantRecord,
    TournamentFormat,
    TournamentRecord,
    TournamentStatus,
)


def _tournament(current_round: int = 1, total_rounds: int = 5, size: int = 8, percent: int = 25) -> TournamentRecord:
    return TournamentRecord(
        id="t-koth",
        format=TournamentFormat.KING_OF_THE_HILL,
        status=TournamentStatus.IN_PROGRESS,
        current_round=current_round,
        total_rounds=total_rounds,
        max_participants=size,
        elimination_percent=percent,
    )


def _roster(n: int) -> list[ParticipantRecord]:
    return [ParticipantRecord(id=f"p{seed}", seed=seed) for seed in range(1, n + 1)]


def _heat(pos: int, pid: str, score: float | None, round_number: int = 1, **kw) -> MatchRecord:
    return MatchRecord(
        id=f"h{round_number}-{pos}",
        round=round_number,
        position=pos,
        participant1_id=pid,
        participant1_score=score,
        status=kw.pop("status", MatchStatus.COMPLETED),
        **kw,
    )


ROUND_ONE_SCORES = [200, 150, 250, 100, 90, 180, 120, 60]


def _round_one() -> list[MatchRecord]:
    return [_heat(i, f"p{i + 1}", s) for i, s in enumerate(ROUND_ONE_SCORES)]


# ── Schedule ────────────────────────────────────────────────────

class TestKothSchedule:
    def test_elimination_count_rounds_up(self):
        assert koth_elimination_count(8, 25) == 2
        assert koth_elimination_count(6, 25) == 2
        assert koth_elimination_count(3, 25) == 1

    def test_elimination_count_leaves_one(self):
        assert koth_elimination_count(2, 99) == 1
        assert koth_elimination_count(1, 25) == 0

    def test_total_rounds_simulates_schedule(self):
        # 8 -> 6 -> 4 -> 3 -> 2 -> 1
        assert koth_total_rounds(8) == 5
        assert koth_total_rounds(4) == 3
        assert koth_total_rounds(2) == 1

    def test_one_heat_per_participant(self):
        pairings = opening_pairings(_tournament(), _roster(8))
        assert [p.participant1_id for p in pairings] == [f"p{i}" for i in range(1, 9)]
        assert all(p.participant2_id is None for p in pairings)


# ── Elimination ─────────────────────────────────────────────────

class TestKothElimination:
    def test_lowest_totals_are_eliminated(self):
        outcome = advance_tournament_round(_tournament(), _round_one(), _roster(8))
        assert sorted(outcome.eliminated_ids) == ["p5", "p8"]
        assert len(outcome.advancing) == 6
        assert outcome.next_round == 2

    def test_reason_carries_rank_and_scores(self):
        matches = _round_one()
        matches[4].judge_commentary = "  Strong opening, weak rebuttal.  "
        outcome = advance_tournament_round(_tournament(), matches, _roster(8))
        reasons = {e.participant_id: e.reason for e in outcome.eliminations}
        assert reasons["p5"] == (
            "Finished 7 of 8 in round 1. Round Score: 90/300. Total Score: 90. Strong opening, weak rebuttal."
        )
        assert reasons["p8"] == "Finished 8 of 8 in round 1. Round Score: 60/300. Total Score: 60."

    def test_ranking_uses_cumulative_total(self):
        roster = _roster(3)
        roster[0].cumulative_score = 250
        roster[1].cumulative_score = 100
        heats = [_heat(0, "p1", 50, 2), _heat(1, "p2", 150, 2), _heat(2, "p3", 280, 2)]
        outcome = advance_tournament_round(_tournament(current_round=2), heats, roster)
        assert outcome.advancing == ["p1", "p3"]
        assert outcome.eliminations[0].reason.startswith("Finished 3 of 3 in round 2. Round Score: 150/300.")
        assert "Total Score: 250." in outcome.eliminations[0].reason

    def test_next_round_heats_follow_seed(self):
        outcome = advance_tournament_round(_tournament(), _round_one(), _roster(8))
        assert [p.participant1_id for p in outcome.pairings] == ["p1", "p2", "p3", "p4", "p6", "p7"]
        assert [p.position for p in outcome.pairings] == list(range(6))

    def test_ties_break_on_round_score_then_seed(self):
        roster = _roster(4)
        roster[0].cumulative_score = 100
        roster[3].cumulative_score = 100
        # totals: p1 150, p2 150, p3 200, p4 150; p2 has the best round score of the tied group
        heats = [_heat(0, "p1", 50), _heat(1, "p2", 150), _heat(2, "p3", 200), _heat(3, "p4", 50)]
        outcome = advance_tournament_round(_tournament(total_rounds=3, size=4), heats, roster)
        assert outcome.eliminated_ids == {"p4"}

    def test_round_scores_are_added_to_cumulative(self):
        outcome = advance_tournament_round(_tournament(), _round_one(), _roster(8))
        assert outcome.deltas["p3"].score == 250

    def test_forfeit_counts_toward_round_quota(self):
        matches = _round_one()
        matches[0] = _heat(0, "p1", None, status=MatchStatus.FORFEITED)
        outcome = advance_tournament_round(_tournament(), matches, _roster(8))
        reasons = {e.participant_id: e.reason for e in outcome.eliminations}
        assert reasons["p1"] == "Forfeited round 1"
        assert sorted(outcome.eliminated_ids) == ["p1", "p8"]


# ── Final round ─────────────────────────────────────────────────

class TestKothFinal:
    def test_final_round_leaves_single_champion(self):
        roster = _roster(3)
        heats = [_heat(0, "p1", 120, 5), _heat(1, "p2", 290, 5), _heat(2, "p3", 200, 5)]
        outcome = advance_tournament_round(_tournament(current_round=5), heats, roster)
        assert outcome.completed is True
        assert outcome.champion_id == "p2"
        assert outcome.advancing == ["p2"]
        assert sorted(outcome.eliminated_ids) == ["p1", "p3"]

    def test_last_survivor_completes_early(self):
        roster = _roster(2)
        heats = [_heat(0, "p1", 100, 2), _heat(1, "p2", 120, 2)]
        outcome = advance_tournament_round(_tournament(current_round=2, total_rounds=4), heats, roster)
        assert outcome.completed is True
        assert outcome.champion_id == "p2"


# ── Heat validation ─────────────────────────────────────────────

class TestKothValidation:
    def test_round_score_above_limit(self):
        matches = _round_one()
        matches[0] = _heat(0, "p1", 301)
        with pytest.raises(ValidationError):
            advance_tournament_round(_tournament(), matches, _roster(8))

    def test_heat_with_two_participants(self):
        matches = _round_one()[:6]
        matches.append(
            MatchRecord(
                id="h1-6", round=1, position=6, participant1_id="p7", participant2_id="p8",
                participant1_score=10, participant2_score=20, status=MatchStatus.COMPLETED,
            )
        )
        with pytest.raises(ValidationError, match="exactly one participant"):
            advance_tournament_round(_tournament(), matches, _roster(8))

    def test_completed_heat_needs_score(self):
        matches = _round_one()
        matches[3] = _heat(3, "p4", None)
        with pytest.raises(ValidationError, match="no score"):
            advance_tournament_round(_tournament(), matches, _roster(8))
