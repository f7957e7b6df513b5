# src/clubrank/schemas/jobs.py

"""Response schema for the scheduled job endpoints."""

from pydantic import BaseModel, Field


class SweepResultRead(BaseModel):
    """Summary returned by every batch job."""

    job: str
    processed: int
    succeeded: int
    failed: int
    skipped: int
    errors: list[dict] = Field(default_factory=list)
