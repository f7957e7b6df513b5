# src/clubrank/schemas/rating_history.py

"""Pydantic schemas for rating ledger entries."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class RatingHistoryRead(BaseModel):
    """A single rating change as recorded in the ledger."""

    id: int
    player_id: int
    match_id: int | None
    rating_after: int
    delta: int
    reason: str
    details: dict
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
