# src/clubrank/schemas/__init__.py

"""Pydantic schemas for API validation and serialization."""

from .jobs import SweepResultRead
from .leaderboard import LeaderboardEntry
from .match import (
    ContestRequest,
    MatchRead,
    MatchReport,
    MatchValidationRead,
    ResolveRequest,
    SetScoreRead,
    TransitionRead,
)
from .pagination import MatchSortField, PaginatedResponse, PlayerSortField, SortOrder
from .player import PlayerBase, PlayerCreate, PlayerRead
from .rating_history import RatingHistoryRead

__all__ = [
    # Jobs
    "SweepResultRead",
    # Leaderboard
    "LeaderboardEntry",
    # Match
    "ContestRequest",
    "MatchRead",
    "MatchReport",
    "MatchValidationRead",
    "ResolveRequest",
    "SetScoreRead",
    "TransitionRead",
    # Pagination
    "MatchSortField",
    "PaginatedResponse",
    "PlayerSortField",
    "SortOrder",
    # Player
    "PlayerBase",
    "PlayerCreate",
    "PlayerRead",
    # Rating history
    "RatingHistoryRead",
]
