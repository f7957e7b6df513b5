# src/clubrank/schemas/match.py

"""Pydantic schemas for the Match resource and its validation workflow."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from clubrank.db.models import ContestResolution, MatchFormat, MatchStatus

# ===============================================
# == Score
# ===============================================


class SetScoreRead(BaseModel):
    """One set, oriented to player1."""

    p1: int
    p2: int
    tiebreak: int | None = None
    super_tiebreak: bool = False


# ===============================================
# == Match Schemas
# ===============================================


class MatchReport(BaseModel):
    """
    Payload for reporting a result.

    The score is written from the reporter's point of view, e.g. "6-4 3-6 [10-7]".

    Examples:
        {"opponent_id": 7, "score": "6-4 6-3", "format": "two_sets",
         "played_at": "2026-01-10T18:00:00Z"}
    """

    opponent_id: int
    score: str = Field(..., min_length=3, max_length=64)
    format: MatchFormat
    played_at: datetime = Field(..., description="When the match was played (ISO format)")
    winner_id: int | None = Field(
        default=None,
        description="Optional; must agree with the score when given",
    )


class MatchRead(BaseModel):
    """Properties to return to the client for a match."""

    id: int
    club_id: int
    player1_id: int
    player2_id: int
    reported_by: int
    winner_id: int
    score: list[SetScoreRead]
    score_text: str
    format: MatchFormat
    played_at: datetime
    created_at: datetime

    status: MatchStatus
    auto_validate_at: datetime
    reminder_sent_at: datetime | None = None
    rating_applied: bool
    finalized_at: datetime | None = None
    validated_by: int | None = None

    player1_rating_before: int | None = None
    player1_rating_after: int | None = None
    player2_rating_before: int | None = None
    player2_rating_after: int | None = None
    # Structure: {k_factor, expected_score, format_coefficient, ...}
    rating_breakdown: dict | None = None

    contested_by: int | None = None
    contested_at: datetime | None = None
    contest_reason: str | None = None
    resolved_by: int | None = None
    resolved_at: datetime | None = None
    resolution: ContestResolution | None = None

    model_config = ConfigDict(from_attributes=True)


# ===============================================
# == Workflow Schemas
# ===============================================


class ContestRequest(BaseModel):
    """Body of a contestation."""

    reason: str | None = Field(default=None, max_length=500)


class ResolveRequest(BaseModel):
    """Administrator decision on a contested match."""

    resolution: ContestResolution


class TransitionRead(BaseModel):
    """Result of a workflow call.

    ``changed`` is false for benign no-ops such as confirming a match that was
    already finalized (``outcome == "already_finalized"``).
    """

    outcome: str
    changed: bool
    match: MatchRead

    model_config = ConfigDict(from_attributes=True)


class MatchValidationRead(BaseModel):
    """Countdown information for a pending match."""

    match_id: int
    status: MatchStatus
    reported_by: int
    awaiting_player_id: int | None
    auto_validate_at: datetime
    seconds_remaining: int
    hours_remaining: int
    minutes_remaining: int
    reminder_sent: bool
    rating_applied: bool
    contest_deadline: datetime | None

    model_config = ConfigDict(from_attributes=True)
