# tests/test_elo_engine.py

"""Unit tests for the pure ELO calculation."""

import pytest
from clubrank.db.models import MatchFormat
from clubrank.exceptions import RatingCalculationError
from clubrank.rating.elo_engine import (
    EloEngine,
    MatchContext,
    clamp_delta,
    round_half_up,
)


@pytest.fixture
def engine() -> EloEngine:
    return EloEngine(upset_threshold=100)


def newcomers(match_format: MatchFormat, **kw) -> MatchContext:
    """Context for two players who have never finished a match."""
    return MatchContext(
        match_format=match_format,
        winner_matches_played=0,
        loser_matches_played=0,
        **kw,
    )


# =============================================================================
# Building blocks
# =============================================================================


@pytest.mark.parametrize(
    "matches_played, expected_k",
    [(0, 40), (9, 40), (10, 32), (29, 32), (30, 24), (250, 24)],
)
def test_k_factor_by_experience(engine: EloEngine, matches_played: int, expected_k: int):
    """New ratings move faster than established ones."""
    assert engine.k_factor(matches_played) == expected_k


def test_expected_score_is_symmetric(engine: EloEngine):
    """Both players' win probabilities add up to one."""
    assert engine.expected_score(1200, 1200) == pytest.approx(0.5)
    total = engine.expected_score(1350, 1100) + engine.expected_score(1100, 1350)
    assert total == pytest.approx(1.0)


def test_upset_threshold(engine: EloEngine):
    """A win is an upset when the loser was rated at least 100 higher."""
    assert engine.is_upset(1100, 1200)
    assert not engine.is_upset(1101, 1200)
    assert not engine.is_upset(1300, 1200)


@pytest.mark.parametrize(
    "recent, expected",
    [(0, 1.0), (1, 0.95), (2, 0.9), (6, 0.7), (10, 0.7)],
)
def test_repetition_modifier_has_a_floor(engine: EloEngine, recent: int, expected: float):
    """Each recent rematch costs 5%, never more than 30% in total."""
    assert engine.repetition_modifier(recent) == pytest.approx(expected)


def test_round_half_up():
    """Halves round up instead of to even."""
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert round_half_up(2.49) == 2


# =============================================================================
# Full calculation
# =============================================================================


def test_equal_newcomers_three_sets(engine: EloEngine):
    """1200 vs 1200, K=40: the winner gains exactly what the loser gives up."""
    change = engine.rate(1200, 1200, newcomers(MatchFormat.THREE_SETS))

    assert change.winner_delta == 20
    assert change.loser_delta == -20
    assert change.breakdown.k_factor == 40
    assert change.breakdown.win_probability == 50


def test_one_set_is_half_of_three_sets_without_bonuses(engine: EloEngine):
    """Without bonuses the format coefficient of a single set halves the change."""
    three = engine.rate(1200, 1200, newcomers(MatchFormat.THREE_SETS))
    one = engine.rate(1200, 1200, newcomers(MatchFormat.ONE_SET))

    assert one.winner_delta * 2 == three.winner_delta
    assert one.loser_delta * 2 == three.loser_delta


@pytest.mark.parametrize(
    "match_format, expected",
    [
        (MatchFormat.THREE_SETS, 20),
        (MatchFormat.TWO_SETS_SUPER_TIEBREAK, 17),
        (MatchFormat.TWO_SETS, 16),
        (MatchFormat.ONE_SET, 10),
        (MatchFormat.SUPER_TIEBREAK, 6),
    ],
)
def test_format_coefficients(engine: EloEngine, match_format: MatchFormat, expected: int):
    """Shorter formats move ratings less."""
    change = engine.rate(1200, 1200, newcomers(match_format))

    assert change.winner_delta == expected
    assert change.loser_delta == -expected


def test_new_opponent_bonus_only_for_the_winner(engine: EloEngine):
    """The novelty bonus rewards the winner without costing the loser more."""
    change = engine.rate(
        1200, 1200, newcomers(MatchFormat.THREE_SETS, is_new_opponent=True)
    )

    assert change.winner_delta == 23
    assert change.loser_delta == -20
    assert change.breakdown.new_opponent_bonus == pytest.approx(1.15)


def test_upset_bonus(engine: EloEngine):
    """An established player beating someone 200 points higher."""
    context = MatchContext(match_format=MatchFormat.THREE_SETS, is_upset=True)

    change = engine.rate(1000, 1200, context)

    # K=24, E≈0.2403, raw≈18.23
    assert change.winner_delta == 22
    assert change.loser_delta == -18


def test_diversity_bonus_needs_three_opponents(engine: EloEngine):
    """Meeting three different opponents in a week earns 10% more."""
    two = engine.rate(
        1200, 1200, newcomers(MatchFormat.THREE_SETS, distinct_opponents_this_week=2)
    )
    three = engine.rate(
        1200, 1200, newcomers(MatchFormat.THREE_SETS, distinct_opponents_this_week=3)
    )

    assert two.winner_delta == 20
    assert three.winner_delta == 22
    assert three.loser_delta == -20


def test_repetition_damps_both_sides(engine: EloEngine):
    """Farming the same opponent shrinks gains and losses alike."""
    change = engine.rate(
        1200,
        1200,
        newcomers(MatchFormat.THREE_SETS, recent_matches_vs_same_opponent=2),
    )

    assert change.winner_delta == 18
    assert change.loser_delta == -18


def test_mixed_experience_averages_k(engine: EloEngine):
    """A newcomer against a veteran uses the average K-factor."""
    context = MatchContext(
        match_format=MatchFormat.THREE_SETS,
        winner_matches_played=0,
        loser_matches_played=30,
    )

    change = engine.rate(1200, 1200, context)

    assert change.breakdown.k_factor == 32
    assert change.winner_delta == 16


def test_heavy_favourite_still_moves_one_point(engine: EloEngine):
    """Both magnitudes are floored at one point."""
    context = MatchContext(match_format=MatchFormat.SUPER_TIEBREAK)

    change = engine.rate(2000, 1000, context)

    assert change.winner_delta == 1
    assert change.loser_delta == -1


def test_breakdown_is_serializable(engine: EloEngine):
    """The breakdown is stored as JSON on the match."""
    change = engine.rate(1200, 1200, newcomers(MatchFormat.TWO_SETS))

    data = change.breakdown.to_dict()

    assert data["format_coefficient"] == pytest.approx(0.8)
    assert data["winner_delta"] == 16
    assert set(data) >= {"k_factor", "expected_score", "repetition_modifier"}


# =============================================================================
# Rating floor
# =============================================================================


def test_clamp_delta_stops_at_floor():
    """A loss never takes a rating below the minimum."""
    assert clamp_delta(110, -20, 100) == -10
    assert clamp_delta(100, -5, 100) == 0
    assert clamp_delta(100, 5, 100) == 5
    assert clamp_delta(1200, -20, 100) == -20


def test_non_positive_rating_is_rejected(engine: EloEngine):
    with pytest.raises(RatingCalculationError):
        engine.rate(0, 1200, newcomers(MatchFormat.ONE_SET))
