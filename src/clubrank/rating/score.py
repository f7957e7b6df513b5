# src/clubrank/rating/score.py

"""
Tennis score parsing and validation for reported club matches.

Accepted notation, written from the reporting player's point of view:
- Regular sets: "6-4 6-3" (commas are accepted as separators)
- Tiebreak sets: "7-6(5)" where the bracket holds the loser's tiebreak points
- Super tiebreak (match tiebreak to 10): "10-8" or "[10-8]"

Each match format fixes how many sets may be played and how many are needed
to win; a score is only valid when it describes a finished match in that
format.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from clubrank.db.models import MatchFormat
from clubrank.exceptions import InvalidScoreError

_SET_PATTERN = re.compile(r"^(\[)?(\d{1,2})-(\d{1,2})(?:\((\d{1,2})\))?(\])?$")

SUPER_TIEBREAK_TARGET = 10


@dataclass(frozen=True)
class SetScore:
    """
    A single set, oriented to one side of the match.

    Attributes:
        p1: Games (or points, for a super tiebreak) of the first side
        p2: Games (or points) of the second side
        tiebreak: Loser's points in a 7-6 tiebreak, when given
        super_tiebreak: Whether this "set" is a match tiebreak to 10
    """

    p1: int
    p2: int
    tiebreak: int | None = None
    super_tiebreak: bool = False

    @property
    def winner_side(self) -> int:
        return 1 if self.p1 > self.p2 else 2

    def flipped(self) -> "SetScore":
        return SetScore(self.p2, self.p1, self.tiebreak, self.super_tiebreak)

    def __str__(self) -> str:
        text = f"{self.p1}-{self.p2}"
        if self.tiebreak is not None:
            text += f"({self.tiebreak})"
        if self.super_tiebreak:
            text = f"[{text}]"
        return text


@dataclass(frozen=True)
class ParsedScore:
    """A validated score: every set, in order, oriented to the first side."""

    sets: tuple[SetScore, ...]
    match_format: MatchFormat

    @property
    def winner_side(self) -> int:
        p1_sets = sum(1 for s in self.sets if s.winner_side == 1)
        return 1 if p1_sets * 2 > len(self.sets) else 2

    @property
    def games(self) -> tuple[int, int]:
        """Total games per side, super tiebreak excluded."""
        regular = [s for s in self.sets if not s.super_tiebreak]
        return sum(s.p1 for s in regular), sum(s.p2 for s in regular)

    def flipped(self) -> "ParsedScore":
        return ParsedScore(tuple(s.flipped() for s in self.sets), self.match_format)

    def to_display_string(self) -> str:
        return " ".join(str(s) for s in self.sets)

    def to_structured(self) -> list[dict]:
        """Convert to the JSON shape stored on ``Match.score``."""
        return [
            {
                "p1": s.p1,
                "p2": s.p2,
                "tiebreak": s.tiebreak,
                "super_tiebreak": s.super_tiebreak,
            }
            for s in self.sets
        ]


def _parse_token(token: str, raw: str, expect_super_tiebreak: bool) -> SetScore:
    found = _SET_PATTERN.match(token)
    if not found:
        raise InvalidScoreError(raw, f"cannot read set '{token}'")

    open_bracket, first, second, tiebreak, close_bracket = found.groups()
    if bool(open_bracket) != bool(close_bracket):
        raise InvalidScoreError(raw, f"unbalanced brackets in '{token}'")

    p1, p2 = int(first), int(second)
    tb = int(tiebreak) if tiebreak is not None else None
    high, low = max(p1, p2), min(p1, p2)

    if expect_super_tiebreak:
        if tb is not None:
            raise InvalidScoreError(raw, "a super tiebreak has no inner tiebreak")
        if high < SUPER_TIEBREAK_TARGET or high - low < 2:
            raise InvalidScoreError(
                raw, f"super tiebreak '{token}' must be won to 10 by two points"
            )
        if high > SUPER_TIEBREAK_TARGET and high - low != 2:
            raise InvalidScoreError(
                raw, f"super tiebreak '{token}' should have ended earlier"
            )
        return SetScore(p1, p2, None, True)

    if open_bracket:
        raise InvalidScoreError(raw, f"unexpected super tiebreak '{token}'")

    valid = (high == 6 and low <= 4) or (high == 7 and low in (5, 6))
    if not valid:
        raise InvalidScoreError(raw, f"'{token}' is not a finished set")
    if tb is not None and (high, low) != (7, 6):
        raise InvalidScoreError(raw, "only a 7-6 set can carry a tiebreak score")
    return SetScore(p1, p2, tb, False)


def _tokens(score_str: str) -> list[str]:
    return [t for t in re.split(r"[\s,]+", score_str.strip()) if t]


def parse_score(score_str: str, match_format: MatchFormat | str) -> ParsedScore:
    """
    Parse and validate a reported score for the given format.

    Args:
        score_str: Score from the reporter's perspective, e.g. "6-4 3-6 [10-7]"
        match_format: One of the MatchFormat values

    Returns:
        ParsedScore oriented to the reporter

    Raises:
        InvalidScoreError: If the score is unreadable or does not describe a
            finished match in that format

    Examples:
        parse_score("6-4 6-3", "two_sets").winner_side  # → 1
        parse_score("4-6 7-6(3) 10-8", "two_sets_super_tiebreak").winner_side  # → 1
    """
    fmt = MatchFormat(match_format)
    tokens = _tokens(score_str)
    if not tokens:
        raise InvalidScoreError(score_str, "score is empty")

    if fmt is MatchFormat.SUPER_TIEBREAK:
        if len(tokens) != 1:
            raise InvalidScoreError(score_str, "expected a single super tiebreak")
        sets = [_parse_token(tokens[0], score_str, expect_super_tiebreak=True)]
        return ParsedScore(tuple(sets), fmt)

    if fmt is MatchFormat.ONE_SET:
        if len(tokens) != 1:
            raise InvalidScoreError(score_str, "expected exactly one set")
        sets = [_parse_token(tokens[0], score_str, expect_super_tiebreak=False)]
        return ParsedScore(tuple(sets), fmt)

    if len(tokens) not in (2, 3):
        raise InvalidScoreError(score_str, "expected two or three sets")

    first_two = [_parse_token(t, score_str, expect_super_tiebreak=False) for t in tokens[:2]]
    split = first_two[0].winner_side != first_two[1].winner_side

    if fmt is MatchFormat.TWO_SETS:
        if len(tokens) != 2 or split:
            raise InvalidScoreError(
                score_str, "a two-set match needs one player to win both sets"
            )
        return ParsedScore(tuple(first_two), fmt)

    if not split:
        if len(tokens) == 3:
            raise InvalidScoreError(score_str, "match was already decided after two sets")
        return ParsedScore(tuple(first_two), fmt)

    if len(tokens) != 3:
        raise InvalidScoreError(score_str, "sets are tied one-all, a decider is missing")

    decider = _parse_token(
        tokens[2],
        score_str,
        expect_super_tiebreak=fmt is MatchFormat.TWO_SETS_SUPER_TIEBREAK,
    )
    return ParsedScore(tuple(first_two + [decider]), fmt)
