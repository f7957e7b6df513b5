# src/clubrank/schemas/leaderboard.py

"""Leaderboard schemas for club rankings."""

from pydantic import BaseModel, ConfigDict, Field

from .player import PlayerRead


class LeaderboardEntry(BaseModel):
    """Single entry in a club leaderboard.

    Attributes:
        rank: Position in leaderboard (1-indexed)
        player: The player with their rating record
        win_rate: Wins over finalized matches, 0.0 without matches
    """

    rank: int = Field(..., ge=1, description="Position in leaderboard (1-indexed)")
    player: PlayerRead
    win_rate: float = Field(..., ge=0.0, le=1.0)

    model_config = ConfigDict(from_attributes=True)
