"""Unit tests for BRACKET advancement in podium.engine.progression."""
from __future__ import annotations

import pytest

from podium.engine.errors import RoundIncompleteError, StateConflictError, ValidationError
from podium.engine.progression import advance_tournament_round, opening_pairings
from podium.engine.records import (
    MatchRecord,
    MatchStatus,
    ParticipantRecord,
    ParticipantStatus,
    TournamentFormat,
    TournamentRecord,
    TournamentStatus,
)


def _tournament(size: int = 8, current_round: int = 1, total_rounds: int = 3, **kw) -> TournamentRecord:
    return TournamentRecord(
        id="t1",
        format=TournamentFormat.BRACKET,
        status=kw.pop("status", TournamentStatus.IN_PROGRESS),
        current_round=current_round,
        total_rounds=total_rounds,
        max_participants=size,
        **kw,
    )


def _roster(n: int) -> list[ParticipantRecord]:
    return [ParticipantRecord(id=f"p{seed}", seed=seed) for seed in range(1, n + 1)]


def _match(pos: int, p1: str, p2: str | None, winner: str | None, round_number: int = 1, **kw) -> MatchRecord:
    return MatchRecord(
        id=f"m{round_number}-{pos}",
        round=round_number,
        position=pos,
        participant1_id=p1,
        participant2_id=p2,
        winner_id=winner,
        status=kw.pop("status", MatchStatus.COMPLETED),
        **kw,
    )


def _round_one_odd_seeds_win() -> list[MatchRecord]:
    # 1v8, 2v7, 3v6, 4v5 with the odd seed winning each
    return [
        _match(0, "p1", "p8", "p1", participant1_score=80, participant2_score=60),
        _match(1, "p2", "p7", "p7", participant1_score=55, participant2_score=70),
        _match(2, "p3", "p6", "p3", participant1_score=75, participant2_score=65),
        _match(3, "p4", "p5", "p5", participant1_score=50, participant2_score=52),
    ]


# ── Eight-player round one ──────────────────────────────────────

class TestEightPlayerRoundOne:
    def test_scenario_advance(self):
        """Odd seeds win round 1: round 2 next, 4 remain, 4 out in round 1."""
        outcome = advance_tournament_round(_tournament(), _round_one_odd_seeds_win(), _roster(8))

        assert outcome.next_round == 2
        assert outcome.completed is False
        assert sorted(outcome.advancing) == ["p1", "p3", "p5", "p7"]
        assert sorted(e.participant_id for e in outcome.eliminations) == ["p2", "p4", "p6", "p8"]
        assert all(e.round == 1 for e in outcome.eliminations)

    def test_exactly_one_eliminated_per_match_and_never_winner(self):
        matches = _round_one_odd_seeds_win()
        outcome = advance_tournament_round(_tournament(), matches, _roster(8))
        eliminated = outcome.eliminated_ids
        for m in matches:
            out = [pid for pid in m.participant_ids if pid in eliminated]
            assert len(out) == 1
            assert m.winner_id not in eliminated

    def test_next_round_pairs_adjacent_winners(self):
        outcome = advance_tournament_round(_tournament(), _round_one_odd_seeds_win(), _roster(8))
        pairs = [(p.participant1_id, p.participant2_id) for p in outcome.pairings]
        assert pairs == [("p1", "p7"), ("p3", "p5")]
        assert [p.position for p in outcome.pairings] == [0, 1]

    def test_win_loss_and_score_deltas(self):
        outcome = advance_tournament_round(_tournament(), _round_one_odd_seeds_win(), _roster(8))
        assert outcome.deltas["p7"].wins == 1
        assert outcome.deltas["p2"].losses == 1
        assert outcome.deltas["p1"].score == 80


# ── Opening pairings ────────────────────────────────────────────

class TestOpeningPairings:
    def test_seed_one_meets_last_seed(self):
        pairings = opening_pairings(_tournament(), _roster(8))
        pairs = [(p.participant1_id, p.participant2_id) for p in pairings]
        assert pairs == [("p1", "p8"), ("p2", "p7"), ("p3", "p6"), ("p4", "p5")]

    def test_odd_field_gives_top_seed_a_bye(self):
        pairings = opening_pairings(_tournament(size=4, total_rounds=2), _roster(3))
        byes = [p for p in pairings if p.is_bye]
        assert len(byes) == 1
        assert byes[0].participant1_id == "p1"
        assert [(p.participant1_id, p.participant2_id) for p in pairings if not p.is_bye] == [("p2", "p3")]

    def test_needs_two_participants(self):
        with pytest.raises(ValidationError):
            opening_pairings(_tournament(), _roster(1))


# ── Inconsistent data ───────────────────────────────────────────

class TestBracketValidation:
    def test_tied_match_without_winner_is_rejected(self):
        matches = _round_one_odd_seeds_win()
        matches[0] = _match(0, "p1", "p8", None, participant1_score=70, participant2_score=70)
        with pytest.raises(ValidationError, match="tied"):
            advance_tournament_round(_tournament(), matches, _roster(8))

    def test_missing_winner_is_rejected(self):
        matches = _round_one_odd_seeds_win()
        matches[1] = _match(1, "p2", "p7", None, participant1_score=40, participant2_score=70)
        with pytest.raises(ValidationError):
            advance_tournament_round(_tournament(), matches, _roster(8))

    def test_winner_must_have_played(self):
        matches = _round_one_odd_seeds_win()
        matches[2] = _match(2, "p3", "p6", "p1")
        with pytest.raises(ValidationError):
            advance_tournament_round(_tournament(), matches, _roster(8))

    def test_score_out_of_range(self):
        matches = _round_one_odd_seeds_win()
        matches[0] = _match(0, "p1", "p8", "p1", participant1_score=101, participant2_score=10)
        with pytest.raises(ValidationError):
            advance_tournament_round(_tournament(), matches, _roster(8))

    def test_incomplete_round(self):
        matches = _round_one_odd_seeds_win()
        matches[3] = _match(3, "p4", "p5", None, status=MatchStatus.IN_PROGRESS)
        with pytest.raises(RoundIncompleteError) as exc:
            advance_tournament_round(_tournament(), matches, _roster(8))
        assert exc.value.pending == 1

    def test_empty_round_is_incomplete(self):
        with pytest.raises(RoundIncompleteError):
            advance_tournament_round(_tournament(), [], _roster(8))

    def test_eliminated_participant_cannot_play(self):
        roster = _roster(8)
        roster[7].status = ParticipantStatus.ELIMINATED
        with pytest.raises(ValidationError, match="not active"):
            advance_tournament_round(_tournament(), _round_one_odd_seeds_win(), roster)

    def test_active_participant_without_match(self):
        with pytest.raises(ValidationError, match="without a match"):
            advance_tournament_round(_tournament(), _round_one_odd_seeds_win()[:3], _roster(8))

    def test_tournament_must_be_running(self):
        with pytest.raises(StateConflictError):
            advance_tournament_round(
                _tournament(status=TournamentStatus.COMPLETED), _round_one_odd_seeds_win(), _roster(8)
            )


# ── Byes, forfeits and the final ────────────────────────────────

class TestBracketCompletion:
    def test_final_match_winner_is_champion(self):
        roster = _roster(4)
        roster[1].status = ParticipantStatus.ELIMINATED
        roster[3].status = ParticipantStatus.ELIMINATED
        final = [_match(0, "p1", "p3", "p3", round_number=2)]
        outcome = advance_tournament_round(_tournament(size=4, current_round=2, total_rounds=2), final, roster)

        assert outcome.completed is True
        assert outcome.champion_id == "p3"
        assert outcome.next_round is None
        assert [e.participant_id for e in outcome.eliminations] == ["p1"]

    def test_bye_advances_without_a_win(self):
        matches = [
            _match(0, "p2", "p3", "p3"),
            _match(1, "p1", None, None, status=MatchStatus.BYE),
        ]
        outcome = advance_tournament_round(_tournament(size=4, total_rounds=2), matches, _roster(3))
        assert sorted(outcome.advancing) == ["p1", "p3"]
        assert outcome.deltas["p1"].wins == 0
        assert [(p.participant1_id, p.participant2_id) for p in outcome.pairings] == [("p3", "p1")]

    def test_single_sided_forfeit_advances_named_participant(self):
        matches = _round_one_odd_seeds_win()
        roster = _roster(8)
        matches[3] = _match(3, "p4", "p5", "p5", status=MatchStatus.FORFEITED)
        outcome = advance_tournament_round(_tournament(), matches, roster)
        assert "p5" in outcome.advancing
        assert "p4" in outcome.eliminated_ids

    def test_odd_winners_give_lowest_seed_a_bye(self):
        # Six players: three winners after round one
        matches = [
            _match(0, "p1", "p6", "p1"),
            _match(1, "p2", "p5", "p5"),
            _match(2, "p3", "p4", "p3"),
        ]
        outcome = advance_tournament_round(_tournament(size=8, total_rounds=3), matches, _roster(6))
        byes = [p for p in outcome.pairings if p.is_bye]
        assert [b.participant1_id for b in byes] == ["p1"]
        assert [(p.participant1_id, p.participant2_id) for p in outcome.pairings if not p.is_bye] == [("p5", "p3")]

    def test_final_leaving_two_standing_is_an_error(self):
        roster = _roster(4)
        matches = [_match(0, "p1", "p4", "p1"), _match(1, "p2", "p3", "p2")]
        with pytest.raises(ValidationError, match="2 participants"):
            advance_tournament_round(_tournament(size=4, current_round=1, total_rounds=1), matches, roster)


# ── Reseeding ───────────────────────────────────────────────────

class TestBracketReseed:
    def test_reseed_by_elo_folds_advancing_set(self):
        roster = _roster(8)
        for p, elo in zip(roster, [1500, 1400, 1900, 1300, 1800, 1200, 1700, 1100]):
            p.elo_at_start = elo
        tournament = _tournament(reseed_after_round=True, reseed_method="ELO_BASED")
        outcome = advance_tournament_round(tournament, _round_one_odd_seeds_win(), roster)
        # Winners by elo: p3 1900, p5 1800, p7 1700, p1 1500
        pairs = [(p.participant1_id, p.participant2_id) for p in outcome.pairings]
        assert pairs == [("p3", "p1"), ("p5", "p7")]

    def test_reseed_is_independent_of_match_order(self):
        roster = _roster(8)
        tournament = _tournament(reseed_after_round=True, reseed_method="SCORE")
        matches = _round_one_odd_seeds_win()
        a = advance_tournament_round(tournament, matches, roster)
        b = advance_tournament_round(tournament, list(reversed(matches)), roster)
        assert [(p.participant1_id, p.participant2_id) for p in a.pairings] == [
            (p.participant1_id, p.participant2_id) for p in b.pairings
        ]

    def test_reseed_by_score_uses_cumulative_totals(self):
        roster = _roster(8)
        tournament = _tournament(reseed_after_round=True, reseed_method="SCORE")
        outcome = advance_tournament_round(tournament, _round_one_odd_seeds_win(), roster)
        # Round scores: p1 80, p3 75, p7 70, p5 52
        pairs = [(p.participant1_id, p.participant2_id) for p in outcome.pairings]
        assert pairs == [("p1", "p5"), ("p3", "p7")]
