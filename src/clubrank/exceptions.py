# src/clubrank/exceptions.py

"""Custom exception hierarchy for ClubRank.

This module provides a structured exception hierarchy that enables:
1. Proper HTTP status code mapping in API endpoints
2. Detailed error context for logging and debugging
3. Clear distinction between caller mistakes, permission problems,
   workflow conflicts and internal invariant violations
"""

from __future__ import annotations


class ClubRankError(Exception):
    """Base exception for all ClubRank errors.

    Attributes:
        message: Human-readable error description
        details: Optional dict with additional context for logging/debugging
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


# =============================================================================
# Resource Not Found Errors (HTTP 404)
# =============================================================================


class ResourceNotFoundError(ClubRankError):
    """Base class for resource not found errors."""

    pass


class PlayerNotFoundError(ResourceNotFoundError):
    """Raised when a player ID does not exist."""

    def __init__(self, player_id: int) -> None:
        super().__init__(
            message=f"Player with ID {player_id} not found",
            details={"player_id": player_id},
        )


class MatchNotFoundError(ResourceNotFoundError):
    """Raised when a match ID does not exist."""

    def __init__(self, match_id: int) -> None:
        super().__init__(
            message=f"Match with ID {match_id} not found",
            details={"match_id": match_id},
        )


# =============================================================================
# Validation Errors (HTTP 422)
# =============================================================================


class ValidationError(ClubRankError):
    """Base class for validation errors. No state is changed."""

    pass


class InvalidScoreError(ValidationError):
    """Raised when a score does not describe a finished match in its format."""

    def __init__(self, score: str, reason: str) -> None:
        super().__init__(
            message=f"Invalid score '{score}': {reason}",
            details={"score": score, "reason": reason},
        )


class SelfOpponentError(ValidationError):
    """Raised when a player reports a match against themselves."""

    def __init__(self, player_id: int) -> None:
        super().__init__(
            message="A player cannot report a match against themselves",
            details={"player_id": player_id},
        )


class DifferentClubError(ValidationError):
    """Raised when the opponent does not belong to the reporter's club."""

    def __init__(self, reporter_id: int, opponent_id: int) -> None:
        super().__init__(
            message=f"Player {opponent_id} is not a member of the reporter's club",
            details={"reporter_id": reporter_id, "opponent_id": opponent_id},
        )


class InvalidMatchDateError(ValidationError):
    """Raised when played_at is in the future or too far in the past."""

    def __init__(self, reason: str) -> None:
        super().__init__(message=reason, details={"reason": reason})


class WinnerMismatchError(ValidationError):
    """Raised when a declared winner disagrees with the score."""

    def __init__(self, declared_winner_id: int, score_winner_id: int) -> None:
        super().__init__(
            message=f"Declared winner {declared_winner_id} does not match "
            f"the score (winner is {score_winner_id})",
            details={
                "declared_winner_id": declared_winner_id,
                "score_winner_id": score_winner_id,
            },
        )


class NotAParticipantError(ValidationError):
    """Raised when the acting player did not play the match."""

    def __init__(self, match_id: int, player_id: int) -> None:
        super().__init__(
            message=f"Player {player_id} did not take part in match {match_id}",
            details={"match_id": match_id, "player_id": player_id},
        )


class InvalidResolutionError(ValidationError):
    """Raised when a contest resolution is not one of the known decisions."""

    def __init__(self, decision: str) -> None:
        super().__init__(
            message=f"Unknown resolution '{decision}'",
            details={"decision": decision},
        )


# =============================================================================
# Authorization Errors (HTTP 403)
# =============================================================================


class AuthorizationError(ClubRankError):
    """Base class for permission errors."""

    pass


class ReporterCannotValidateError(AuthorizationError):
    """Raised when the reporter tries to confirm or contest a pending report."""

    def __init__(self, match_id: int, player_id: int, action: str) -> None:
        super().__init__(
            message=f"You cannot {action} a result you reported yourself",
            details={"match_id": match_id, "player_id": player_id, "action": action},
        )


class AdminRequiredError(AuthorizationError):
    """Raised when a non-admin tries to resolve a contested match."""

    def __init__(self, player_id: int) -> None:
        super().__init__(
            message="Only a club administrator can resolve a contested match",
            details={"player_id": player_id},
        )


class ContestationLimitError(AuthorizationError):
    """Raised when a player already used all contestations for the month."""

    def __init__(self, player_id: int, limit: int) -> None:
        super().__init__(
            message=f"You have reached the limit of {limit} contestations this month",
            details={"player_id": player_id, "limit": limit},
        )


# =============================================================================
# Workflow Conflicts (HTTP 409)
# =============================================================================


class InvalidTransitionError(ClubRankError):
    """Raised when the requested event is not allowed from the current status."""

    def __init__(self, match_id: int, status: str, event: str) -> None:
        super().__init__(
            message=f"Cannot {event} match {match_id} while it is {status}",
            details={"match_id": match_id, "status": status, "event": event},
        )


class ContestationWindowClosedError(InvalidTransitionError):
    """Raised when a finalized match is older than the contestation window."""

    def __init__(self, match_id: int, window_days: int) -> None:
        ClubRankError.__init__(
            self,
            message=f"The contestation period has expired ({window_days} days "
            f"after validation)",
            details={"match_id": match_id, "window_days": window_days},
        )


# =============================================================================
# Rating Engine Errors (HTTP 500)
# =============================================================================


class RatingEngineError(ClubRankError):
    """Base class for rating calculation errors."""

    pass


class RatingCalculationError(RatingEngineError):
    """Raised when rating calculation fails due to invalid data."""

    def __init__(self, message: str, player_id: int | None = None) -> None:
        details = {"player_id": player_id} if player_id else {}
        super().__init__(message=message, details=details)


class RatingAlreadyAppliedError(RatingEngineError):
    """Raised when a second rating application is attempted for one match."""

    def __init__(self, match_id: int) -> None:
        super().__init__(
            message=f"Rating already applied for match {match_id}",
            details={"match_id": match_id},
        )
