# tests/test_score_parser.py

"""Tests for tennis score parsing and validation."""

import pytest
from clubrank.db.models import MatchFormat
from clubrank.exceptions import InvalidScoreError
from clubrank.rating.score import parse_score

# =============================================================================
# Valid scores
# =============================================================================


@pytest.mark.parametrize(
    "score, match_format, winner_side",
    [
        ("6-4 6-3", "two_sets", 1),
        ("3-6 2-6", "two_sets", 2),
        ("6-4 3-6 7-5", "three_sets", 1),
        ("7-6(5) 6-7(3) 4-6", "three_sets", 2),
        ("6-0 6-1", "three_sets", 1),
        ("6-4 3-6 [10-7]", "two_sets_super_tiebreak", 1),
        ("6-4 3-6 10-12", "two_sets_super_tiebreak", 2),
        ("4-6, 6-3, 10-8", "two_sets_super_tiebreak", 1),
        ("7-5", "one_set", 1),
        ("10-4", "super_tiebreak", 1),
        ("[11-13]", "super_tiebreak", 2),
    ],
)
def test_valid_scores(score: str, match_format: str, winner_side: int):
    """Finished matches are accepted and the winner is read from the sets."""
    parsed = parse_score(score, match_format)

    assert parsed.winner_side == winner_side
    assert parsed.match_format == MatchFormat(match_format)


def test_tiebreak_points_are_kept():
    """The bracketed tiebreak score is stored on the 7-6 set."""
    parsed = parse_score("7-6(4) 6-2", MatchFormat.TWO_SETS)

    assert parsed.sets[0].tiebreak == 4
    assert parsed.sets[1].tiebreak is None
    assert parsed.to_display_string() == "7-6(4) 6-2"


def test_flipped_score_reads_from_the_other_side():
    """Flipping swaps every set and the winner, but not the format."""
    parsed = parse_score("6-4 3-6 [10-7]", "two_sets_super_tiebreak")

    flipped = parsed.flipped()

    assert flipped.winner_side == 2
    assert flipped.to_display_string() == "4-6 6-3 [7-10]"
    assert flipped.games == (10, 9)


def test_structured_form():
    """The stored JSON shape lists every set with its flags."""
    parsed = parse_score("6-4 3-6 [10-7]", "two_sets_super_tiebreak")

    assert parsed.to_structured() == [
        {"p1": 6, "p2": 4, "tiebreak": None, "super_tiebreak": False},
        {"p1": 3, "p2": 6, "tiebreak": None, "super_tiebreak": False},
        {"p1": 10, "p2": 7, "tiebreak": None, "super_tiebreak": True},
    ]


# =============================================================================
# Rejected scores
# =============================================================================


@pytest.mark.parametrize(
    "score, match_format",
    [
        ("", "two_sets"),
        ("six-four", "one_set"),
        ("6-5", "one_set"),  # set not finished
        ("6-6", "one_set"),
        ("8-6", "one_set"),
        ("7-4", "one_set"),
        ("6-4(3)", "one_set"),  # tiebreak only on 7-6
        ("6-4 6-3", "one_set"),  # too many sets
        ("6-4 3-6", "two_sets"),  # split sets in a two-set match
        ("6-4 6-3 6-2", "three_sets"),  # decided after two sets
        ("6-4 3-6", "three_sets"),  # decider missing
        ("6-4 3-6 [10-9]", "two_sets_super_tiebreak"),  # not won by two
        ("6-4 3-6 [9-7]", "two_sets_super_tiebreak"),  # not to 10
        ("6-4 3-6 [14-10]", "two_sets_super_tiebreak"),  # should have ended earlier
        ("6-4 3-6 6-2", "two_sets_super_tiebreak"),  # decider must be a tiebreak
        ("6-4 3-6 [10-7]", "three_sets"),  # no super tiebreak in three sets
        ("[10-7", "super_tiebreak"),  # unbalanced brackets
        ("6-4", "super_tiebreak"),
    ],
)
def test_invalid_scores(score: str, match_format: str):
    """Anything that is not a finished match in the format is rejected."""
    with pytest.raises(InvalidScoreError):
        parse_score(score, match_format)


def test_invalid_score_error_carries_the_reason():
    """The error message names the offending set."""
    with pytest.raises(InvalidScoreError) as exc_info:
        parse_score("6-4 6-5", "two_sets")

    assert "6-5" in exc_info.value.message
    assert exc_info.value.details["score"] == "6-4 6-5"


def test_unknown_format_is_rejected():
    """An unknown format string fails before any set is read."""
    with pytest.raises(ValueError):
        parse_score("6-4 6-3", "best_of_five")
