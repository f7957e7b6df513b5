# src/clubrank/schemas/player.py

"""Pydantic schemas for the Player resource."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# ===============================================
# Base Schema: Defines shared attributes for creation
# ===============================================
class PlayerBase(BaseModel):
    """Shared properties for a player."""

    name: str = Field(..., min_length=1, max_length=100)
    club_id: int = Field(..., ge=1, description="Club the player belongs to")


# ===============================================
# Create Schema
# ===============================================
class PlayerCreate(PlayerBase):
    """Properties to receive via API on create."""

    is_admin: bool = False


# ===============================================
# Read Schema: Defines attributes for returning data
# ===============================================
class PlayerRead(PlayerBase):
    """Properties to return to the client, including the rating record."""

    id: int
    is_admin: bool
    is_active: bool
    current_rating: int
    best_rating: int
    lowest_rating: int
    matches_played: int
    wins: int
    losses: int
    last_match_at: datetime | None
    current_streak: int
    best_streak: int
    created_at: datetime

    # Enable ORM mode for this schema
    model_config = ConfigDict(from_attributes=True)
