# src/clubrank/schemas/pagination.py

"""Pagination and sorting schemas shared by the list endpoints."""

from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class SortOrder(str, Enum):
    """Sort order for list endpoints."""

    ASC = "asc"
    DESC = "desc"


class PlayerSortField(str, Enum):
    """Sortable fields for players."""

    ID = "id"
    NAME = "name"
    CREATED_AT = "created_at"
    CURRENT_RATING = "current_rating"


class MatchSortField(str, Enum):
    """Sortable fields for matches."""

    ID = "id"
    PLAYED_AT = "played_at"
    CREATED_AT = "created_at"
    FINALIZED_AT = "finalized_at"


class PaginatedResponse(BaseModel, Generic[T]):
    """Standard paginated response wrapper.

    Attributes:
        items: List of items for the current page
        total: Total number of records matching the filters
        skip: Number of records skipped
        limit: Maximum number of records returned
        has_more: Whether more records exist beyond this page
    """

    items: list[T]
    total: int = Field(..., description="Total records matching filters")
    skip: int = Field(..., description="Records skipped")
    limit: int = Field(..., description="Max records returned")
    has_more: bool = Field(..., description="More records exist beyond this page")

    @classmethod
    def from_page(
        cls, items: list[Any], total: int, skip: int, limit: int
    ) -> "PaginatedResponse[T]":
        """Wrap one page of results, working out ``has_more`` from the totals."""
        return cls(
            items=items,
            total=total,
            skip=skip,
            limit=limit,
            has_more=(skip + len(items)) < total,
        )
