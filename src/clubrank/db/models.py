# src/clubrank/db/models.py

"""Database models for the ClubRank application."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, List

from sqlalchemy import (
    JSON,
    ForeignKey,
    Index,
    String,
    select,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import (
    Mapped,
    declarative_base,
    mapped_column,
    relationship,
)

from clubrank.clock import utcnow_naive

Base = declarative_base()


# ===============================================
# Enumerations stored as strings
# ===============================================


class MatchStatus(str, Enum):
    """Lifecycle states of a reported match result."""

    PENDING_CONFIRMATION = "pending_confirmation"
    CONFIRMED = "confirmed"
    AUTO_VALIDATED = "auto_validated"
    CONTESTED = "contested"
    RESOLVED = "resolved"


FINALIZED_STATUSES = (MatchStatus.CONFIRMED.value, MatchStatus.AUTO_VALIDATED.value)


class MatchFormat(str, Enum):
    """How many sets were played and how the decider was settled."""

    ONE_SET = "one_set"
    TWO_SETS = "two_sets"
    TWO_SETS_SUPER_TIEBREAK = "two_sets_super_tiebreak"
    THREE_SETS = "three_sets"
    SUPER_TIEBREAK = "super_tiebreak"


class RatingChangeReason(str, Enum):
    """Why a rating history entry was written."""

    MATCH_RESULT = "match_result"
    INACTIVITY_DECAY = "inactivity_decay"
    ADMIN_ADJUSTMENT = "admin_adjustment"
    REVERSAL = "reversal"


class ContestResolution(str, Enum):
    """Outcome chosen by an administrator for a contested match."""

    REINSTATED = "reinstated"
    REVERTED = "reverted"


# ===============================================
# Mixins for Common Columns
# ===============================================


class TimestampMixin:
    """Mixin providing created_at and updated_at timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow_naive,
        nullable=False,
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        default=None,
        onupdate=utcnow_naive,
        nullable=True,
    )


class VersionMixin:
    """Mixin providing optimistic locking via version column."""

    version: Mapped[int] = mapped_column(default=1, nullable=False)


# ===============================================
# Players and their rating record
# ===============================================


class Player(Base, TimestampMixin, VersionMixin):
    """A club member together with their live rating record.

    Attributes:
        club_id: Scoping key owned by the membership service; only players
            of the same club can be reported as opponents.
        is_admin: Default source for the admin capability check.
        matches_played: Never decremented, even when a result is reversed.
        last_active_week: ISO week ("2026-W02") that last extended the streak.
    """

    __tablename__ = "players"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    club_id: Mapped[int] = mapped_column(nullable=False, index=True)
    is_admin: Mapped[bool] = mapped_column(default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False, index=True)

    current_rating: Mapped[int] = mapped_column(default=1200, nullable=False)
    best_rating: Mapped[int] = mapped_column(default=1200, nullable=False)
    lowest_rating: Mapped[int] = mapped_column(default=1200, nullable=False)

    matches_played: Mapped[int] = mapped_column(default=0, nullable=False)
    wins: Mapped[int] = mapped_column(default=0, nullable=False)
    losses: Mapped[int] = mapped_column(default=0, nullable=False)
    last_match_at: Mapped[datetime | None] = mapped_column(
        default=None, nullable=True, index=True
    )

    current_streak: Mapped[int] = mapped_column(default=0, nullable=False)
    best_streak: Mapped[int] = mapped_column(default=0, nullable=False)
    last_active_week: Mapped[str | None] = mapped_column(String, nullable=True)

    rating_history: Mapped[List["RatingHistory"]] = relationship(
        back_populates="player", order_by="RatingHistory.id"
    )

    def __init__(self, name: str, **kw: Any):
        rating = kw.pop("current_rating", 1200)
        kw.setdefault("best_rating", rating)
        kw.setdefault("lowest_rating", rating)
        super().__init__(current_rating=rating, **kw)
        self.name = name

    @classmethod
    async def find_by_ids_for_update(
        cls, db: AsyncSession, player_ids: list[int]
    ) -> dict[int, "Player"]:
        """Fetch players with a row lock, in ascending id order.

        Locking in a fixed order keeps two writers touching the same pair of
        players from deadlocking each other.
        """
        query = (
            select(cls)
            .where(cls.id.in_(player_ids))
            .order_by(cls.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        return {player.id: player for player in result.scalars().all()}


class RatingHistory(Base):
    """Append-only ledger of every rating change.

    Rows are never updated or deleted; a contested result is undone by a
    compensating ``reversal`` entry.
    """

    __tablename__ = "rating_history"
    id: Mapped[int] = mapped_column(primary_key=True)
    player_id: Mapped[int] = mapped_column(
        ForeignKey("players.id"), nullable=False, index=True
    )
    match_id: Mapped[int | None] = mapped_column(
        ForeignKey("matches.id"), nullable=True, index=True
    )
    rating_after: Mapped[int] = mapped_column(nullable=False)
    delta: Mapped[int] = mapped_column(nullable=False)
    reason: Mapped[str] = mapped_column(String, nullable=False)

    # Ex: {'opponent_id': 4, 'modifiers': {...}} or {'days_inactive': 21}
    details: Mapped[dict] = mapped_column(JSON, default=lambda: {})
    created_at: Mapped[datetime] = mapped_column(default=utcnow_naive, nullable=False)

    player: Mapped["Player"] = relationship(back_populates="rating_history")

    __table_args__ = (
        Index("ix_rating_history_player_reason_created", "player_id", "reason", "created_at"),
    )


# ===============================================
# Matches
# ===============================================


class Match(Base, TimestampMixin, VersionMixin):
    """A single reported result, from report to finality.

    ``player1_id`` is always the lower of the two player ids and ``score`` is
    oriented to player1, so the stored result does not depend on who
    reported it.
    """

    __tablename__ = "matches"
    id: Mapped[int] = mapped_column(primary_key=True)
    club_id: Mapped[int] = mapped_column(nullable=False, index=True)
    player1_id: Mapped[int] = mapped_column(
        ForeignKey("players.id"), nullable=False, index=True
    )
    player2_id: Mapped[int] = mapped_column(
        ForeignKey("players.id"), nullable=False, index=True
    )
    reported_by: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False)
    winner_id: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False)

    # Ex: [{'p1': 6, 'p2': 4, 'tiebreak': None, 'super_tiebreak': False}, ...]
    score: Mapped[list] = mapped_column(JSON, nullable=False)
    score_text: Mapped[str] = mapped_column(String, nullable=False)
    format: Mapped[str] = mapped_column(String, nullable=False)
    played_at: Mapped[datetime] = mapped_column(nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String, default=MatchStatus.PENDING_CONFIRMATION.value, nullable=False
    )
    reminder_sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    auto_validate_at: Mapped[datetime] = mapped_column(nullable=False)

    # Set in the same UPDATE that finalizes the match
    rating_applied: Mapped[bool] = mapped_column(default=False, nullable=False)
    finalized_at: Mapped[datetime | None] = mapped_column(nullable=True)
    validated_by: Mapped[int | None] = mapped_column(nullable=True)

    player1_rating_before: Mapped[int | None] = mapped_column(nullable=True)
    player1_rating_after: Mapped[int | None] = mapped_column(nullable=True)
    player2_rating_before: Mapped[int | None] = mapped_column(nullable=True)
    player2_rating_after: Mapped[int | None] = mapped_column(nullable=True)
    rating_breakdown: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    contested_by: Mapped[int | None] = mapped_column(nullable=True, index=True)
    contested_at: Mapped[datetime | None] = mapped_column(nullable=True)
    contest_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    contested_from: Mapped[str | None] = mapped_column(String, nullable=True)

    resolved_by: Mapped[int | None] = mapped_column(nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolution: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        Index("ix_matches_status_auto_validate_at", "status", "auto_validate_at"),
        Index("ix_matches_status_created_at", "status", "created_at"),
    )

    def opponent_of(self, player_id: int) -> int:
        """Return the other participant's id."""
        return self.player2_id if player_id == self.player1_id else self.player1_id

    def is_participant(self, player_id: int) -> bool:
        return player_id in (self.player1_id, self.player2_id)

    @property
    def loser_id(self) -> int:
        return self.opponent_of(self.winner_id)
