# src/clubrank/rating/elo_engine.py

"""
ELO rating engine for club tennis results.

Full formula for the winner's gain:

    gain = K × (1 − E) × FormatCoef × Repetition × NewOpponent × Upset × Diversity

where E = 1 / (1 + 10^((R_loser − R_winner) / 400)) is the winner's expected
score. The loser gives up K × (1 − E) × FormatCoef × Repetition: the bonuses
reward the circumstances of a win and only ever apply to the gaining side,
while the repetition penalty damps farming on both sides.

Everything in this module is pure; reading history and persisting ratings is
the job of ``clubrank.services.rating_store``.
"""

import math
from dataclasses import asdict, dataclass

from clubrank.db.models import MatchFormat
from clubrank.exceptions import RatingCalculationError

# ===============================================
# == Configuration
# ===============================================

# Shorter formats are noisier, so they move ratings less.
FORMAT_COEFFICIENTS: dict[MatchFormat, float] = {
    MatchFormat.THREE_SETS: 1.0,
    MatchFormat.TWO_SETS_SUPER_TIEBREAK: 0.85,
    MatchFormat.TWO_SETS: 0.8,
    MatchFormat.ONE_SET: 0.5,
    MatchFormat.SUPER_TIEBREAK: 0.3,
}

NEW_OPPONENT_BONUS = 1.15
UPSET_BONUS = 1.20
DIVERSITY_BONUS = 1.10
DIVERSITY_MIN_OPPONENTS = 3
REPETITION_PENALTY_PER_MATCH = 0.05
REPETITION_MIN_MODIFIER = 0.70

# Experience-based K-factor
K_FACTOR_NEW = 40
K_FACTOR_INTERMEDIATE = 32
K_FACTOR_ESTABLISHED = 24
NEW_PLAYER_MATCHES = 10
INTERMEDIATE_PLAYER_MATCHES = 30

ELO_DIVISOR = 400.0


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values, like most scoreboards do."""
    return int(math.floor(value + 0.5))


@dataclass
class MatchContext:
    """Facts about a finished match that shape the size of the rating change.

    Attributes:
        match_format: Format the match was played in
        is_new_opponent: The pair has no earlier finalized match
        is_upset: The winner was rated lower by at least the upset threshold
        recent_matches_vs_same_opponent: Finalized matches between the pair
            inside the repetition window
        distinct_opponents_this_week: Distinct opponents the winner met in
            finalized matches over the trailing week
        winner_matches_played / loser_matches_played: Drive the K-factor
    """

    match_format: MatchFormat
    is_new_opponent: bool = False
    is_upset: bool = False
    recent_matches_vs_same_opponent: int = 0
    distinct_opponents_this_week: int = 0
    winner_matches_played: int = INTERMEDIATE_PLAYER_MATCHES
    loser_matches_played: int = INTERMEDIATE_PLAYER_MATCHES


@dataclass
class RatingBreakdown:
    """Every factor that went into one rating change, for display and audit."""

    k_factor: int
    expected_score: float
    win_probability: int
    format_coefficient: float
    new_opponent_bonus: float
    upset_bonus: float
    repetition_modifier: float
    diversity_bonus: float
    raw_change: float
    winner_delta: int
    loser_delta: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RatingChange:
    """Signed deltas for both sides of a match."""

    winner_delta: int
    loser_delta: int
    breakdown: RatingBreakdown


class EloEngine:
    """Encapsulates the ELO calculation logic."""

    def __init__(self, upset_threshold: int = 100):
        self._upset_threshold = upset_threshold

    def k_factor(self, matches_played: int) -> int:
        """K-factor by experience: new ratings settle faster."""
        if matches_played < NEW_PLAYER_MATCHES:
            return K_FACTOR_NEW
        if matches_played < INTERMEDIATE_PLAYER_MATCHES:
            return K_FACTOR_INTERMEDIATE
        return K_FACTOR_ESTABLISHED

    def expected_score(self, rating: int, opponent_rating: int) -> float:
        """Standard logistic expected score (probability of winning)."""
        return 1.0 / (1.0 + math.pow(10, (opponent_rating - rating) / ELO_DIVISOR))

    def is_upset(self, winner_rating: int, loser_rating: int) -> bool:
        return loser_rating - winner_rating >= self._upset_threshold

    def repetition_modifier(self, recent_matches: int) -> float:
        return max(
            REPETITION_MIN_MODIFIER,
            1.0 - recent_matches * REPETITION_PENALTY_PER_MATCH,
        )

    def rate(
        self, winner_rating: int, loser_rating: int, context: MatchContext
    ) -> RatingChange:
        """
        Compute the rating change for a finished match.

        Both magnitudes are floored at 1 so a decided match always moves the
        ratings. Neither delta is clamped against the rating floor here; that
        happens when the delta is applied.

        Raises:
            RatingCalculationError: If either rating is not positive
        """
        if winner_rating <= 0 or loser_rating <= 0:
            raise RatingCalculationError(
                f"Cannot rate a match between ratings {winner_rating} and {loser_rating}"
            )

        k_factor = round_half_up(
            (
                self.k_factor(context.winner_matches_played)
                + self.k_factor(context.loser_matches_played)
            )
            / 2
        )
        expected = self.expected_score(winner_rating, loser_rating)
        raw_change = k_factor * (1.0 - expected)

        format_coefficient = FORMAT_COEFFICIENTS[MatchFormat(context.match_format)]
        repetition = self.repetition_modifier(context.recent_matches_vs_same_opponent)
        new_opponent = NEW_OPPONENT_BONUS if context.is_new_opponent else 1.0
        upset = UPSET_BONUS if context.is_upset else 1.0
        diversity = (
            DIVERSITY_BONUS
            if context.distinct_opponents_this_week >= DIVERSITY_MIN_OPPONENTS
            else 1.0
        )

        shared = raw_change * format_coefficient * repetition
        winner_delta = max(1, round_half_up(shared * new_opponent * upset * diversity))
        loser_delta = -max(1, round_half_up(shared))

        breakdown = RatingBreakdown(
            k_factor=k_factor,
            expected_score=round(expected, 4),
            win_probability=round_half_up(expected * 100),
            format_coefficient=format_coefficient,
            new_opponent_bonus=new_opponent,
            upset_bonus=upset,
            repetition_modifier=round(repetition, 2),
            diversity_bonus=diversity,
            raw_change=round(raw_change, 2),
            winner_delta=winner_delta,
            loser_delta=loser_delta,
        )
        return RatingChange(winner_delta, loser_delta, breakdown)


def clamp_delta(current_rating: int, delta: int, min_rating: int) -> int:
    """Return the part of ``delta`` that can be applied without crossing the floor."""
    new_rating = max(min_rating, current_rating + delta)
    return new_rating - current_rating
