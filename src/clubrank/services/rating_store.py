# src/clubrank/services/rating_store.py

"""Persistence of player ratings and the append-only rating ledger.

Every rating write goes through ``apply_rating_delta`` so that the floor, the
best/lowest watermarks and the history entry are always updated together.
Callers must hold the player row lock (``lock_players``) and own the
transaction; nothing here commits.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from clubrank.config import Settings
from clubrank.db import models
from clubrank.exceptions import PlayerNotFoundError
from clubrank.rating.elo_engine import EloEngine, MatchContext, clamp_delta

logger = logging.getLogger(__name__)


async def lock_players(
    db: AsyncSession, player_ids: list[int]
) -> dict[int, models.Player]:
    """Load and row-lock the given players.

    Raises:
        PlayerNotFoundError: If any of the ids does not exist
    """
    players = await models.Player.find_by_ids_for_update(db, sorted(set(player_ids)))
    missing = set(player_ids) - set(players)
    if missing:
        raise PlayerNotFoundError(min(missing))
    return players


def apply_rating_delta(
    db: AsyncSession,
    player: models.Player,
    delta: int,
    reason: models.RatingChangeReason,
    now: datetime,
    min_rating: int,
    match_id: int | None = None,
    details: dict | None = None,
) -> models.RatingHistory:
    """
    Apply a signed delta to a player's rating and append the ledger entry.

    The delta is clipped so the rating never drops below ``min_rating``; the
    entry records the delta that was actually applied.
    """
    effective = clamp_delta(player.current_rating, delta, min_rating)
    if effective != delta:
        logger.debug(
            "Rating delta clipped at floor",
            extra={"player_id": player.id, "requested": delta, "applied": effective},
        )

    player.current_rating += effective
    player.best_rating = max(player.best_rating, player.current_rating)
    player.lowest_rating = min(player.lowest_rating, player.current_rating)
    player.version += 1

    entry = models.RatingHistory(
        player_id=player.id,
        match_id=match_id,
        rating_after=player.current_rating,
        delta=effective,
        reason=reason.value,
        details=details or {},
        created_at=now,
    )
    db.add(player)
    db.add(entry)
    return entry


def iso_week(moment: datetime) -> str:
    """ISO week label, e.g. "2026-W02"."""
    year, week, _ = moment.isocalendar()
    return f"{year}-W{week:02d}"


def record_finalized_match(player: models.Player, won: bool, now: datetime) -> None:
    """
    Update the activity counters after one of the player's matches finalized.

    The streak counts consecutive ISO weeks with at least one finalized match.
    """
    player.matches_played += 1
    if won:
        player.wins += 1
    else:
        player.losses += 1
    player.last_match_at = now

    this_week = iso_week(now)
    if player.last_active_week == this_week:
        return
    if player.last_active_week == iso_week(now - timedelta(days=7)):
        player.current_streak += 1
    else:
        player.current_streak = 1
    player.best_streak = max(player.best_streak, player.current_streak)
    player.last_active_week = this_week


def effective_streak(player: models.Player, now: datetime) -> int:
    """
    The streak as it stands at ``now``.

    The stored streak is only reset when the next match finalizes; it has
    already lapsed once a whole ISO week went by without a match.
    """
    if player.last_active_week in (iso_week(now), iso_week(now - timedelta(days=7))):
        return player.current_streak
    return 0


def _between(player_a: int, player_b: int):
    return or_(
        and_(models.Match.player1_id == player_a, models.Match.player2_id == player_b),
        and_(models.Match.player1_id == player_b, models.Match.player2_id == player_a),
    )


async def build_match_context(
    db: AsyncSession,
    match: models.Match,
    winner: models.Player,
    loser: models.Player,
    now: datetime,
    settings: Settings,
    engine: EloEngine,
) -> MatchContext:
    """
    Gather the history facts the engine needs for one match.

    Only matches whose rating effect is currently applied count as history,
    and the match being finalized is excluded.
    """
    counted = (
        models.Match.rating_applied.is_(True),
        models.Match.id != match.id,
    )

    pair_query = select(func.count(models.Match.id)).where(
        *counted, _between(winner.id, loser.id)
    )
    previous_vs_opponent = (await db.execute(pair_query)).scalar_one()

    repetition_since = now - timedelta(days=settings.repetition_window_days)
    recent_query = pair_query.where(models.Match.played_at >= repetition_since)
    recent_vs_opponent = (await db.execute(recent_query)).scalar_one()

    diversity_since = now - timedelta(days=settings.diversity_window_days)
    weekly_query = select(models.Match.player1_id, models.Match.player2_id).where(
        *counted,
        or_(
            models.Match.player1_id == winner.id,
            models.Match.player2_id == winner.id,
        ),
        models.Match.played_at >= diversity_since,
    )
    rows = (await db.execute(weekly_query)).all()
    weekly_opponents = {p2 if p1 == winner.id else p1 for p1, p2 in rows}

    return MatchContext(
        match_format=models.MatchFormat(match.format),
        is_new_opponent=previous_vs_opponent == 0,
        is_upset=engine.is_upset(winner.current_rating, loser.current_rating),
        recent_matches_vs_same_opponent=recent_vs_opponent,
        distinct_opponents_this_week=len(weekly_opponents),
        winner_matches_played=winner.matches_played,
        loser_matches_played=loser.matches_played,
    )


async def applied_decay_since(
    db: AsyncSession, player_id: int, since: datetime
) -> int:
    """Total inactivity decay (as a positive number) recorded after ``since``."""
    query = select(func.coalesce(func.sum(models.RatingHistory.delta), 0)).where(
        models.RatingHistory.player_id == player_id,
        models.RatingHistory.reason == models.RatingChangeReason.INACTIVITY_DECAY.value,
        models.RatingHistory.created_at > since,
    )
    total = (await db.execute(query)).scalar_one()
    return -int(total)
