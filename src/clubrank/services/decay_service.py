# src/clubrank/services/decay_service.py

"""
Inactivity decay.

A player who has not finished a match for more than the threshold loses a
fixed number of points per extra day, up to a cap:

    decay_days = days_inactive − INACTIVITY_DAYS_THRESHOLD
    target     = min(decay_days × INACTIVITY_DECAY_PER_DAY, MAX_INACTIVITY_DECAY)

``target`` is the total owed since ``last_match_at``. The job applies only
the part not already in the ledger, so running it several times a day, or
catching up after missed days, leaves the same result as one run per day.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clubrank.clock import Clock, SystemClock
from clubrank.config import Settings, get_settings
from clubrank.db import models
from clubrank.rating.elo_engine import clamp_delta
from clubrank.services import rating_store
from clubrank.services.scheduler import SweepResult

logger = logging.getLogger(__name__)


def target_decay(days_inactive: int, settings: Settings) -> int:
    """Total decay owed after ``days_inactive`` full days without a match."""
    decay_days = days_inactive - settings.inactivity_days_threshold
    if decay_days <= 0:
        return 0
    return min(
        decay_days * settings.inactivity_decay_per_day,
        settings.max_inactivity_decay,
    )


async def decay_player(
    db: AsyncSession, player_id: int, now: datetime, settings: Settings
) -> int:
    """
    Apply the outstanding decay for one player in the caller's transaction.

    Returns the number of points removed (0 when nothing was owed).
    """
    players = await rating_store.lock_players(db, [player_id])
    player = players[player_id]
    if not player.is_active or player.last_match_at is None:
        return 0

    days_inactive = (now - player.last_match_at).days
    target = target_decay(days_inactive, settings)
    already = await rating_store.applied_decay_since(db, player.id, player.last_match_at)
    outstanding = target - already
    if outstanding <= 0:
        return 0

    effective = clamp_delta(player.current_rating, -outstanding, settings.min_rating)
    if effective == 0:
        return 0

    rating_store.apply_rating_delta(
        db,
        player,
        effective,
        models.RatingChangeReason.INACTIVITY_DECAY,
        now,
        settings.min_rating,
        details={
            "days_inactive": days_inactive,
            "decay_days": days_inactive - settings.inactivity_days_threshold,
            "cumulative_decay": already - effective,
            "last_match_at": player.last_match_at.isoformat(),
        },
    )
    return -effective


async def run_inactivity_decay(
    db: AsyncSession,
    *,
    clock: Clock | None = None,
    settings: Settings | None = None,
) -> SweepResult:
    """Apply inactivity decay to every active player past the threshold."""
    clock = clock or SystemClock()
    settings = settings or get_settings()

    now = clock.now()
    cutoff = now - timedelta(days=settings.inactivity_days_threshold)
    query = (
        select(models.Player.id)
        .where(
            models.Player.is_active.is_(True),
            models.Player.last_match_at.is_not(None),
            models.Player.last_match_at < cutoff,
        )
        .order_by(models.Player.id)
    )
    player_ids = (await db.execute(query)).scalars().all()

    result = SweepResult()
    for player_id in player_ids:
        result.processed += 1
        try:
            removed = await decay_player(db, player_id, now, settings)
            if removed:
                await db.commit()
                result.succeeded += 1
                logger.debug(
                    "Inactivity decay applied",
                    extra={"player_id": player_id, "points": removed},
                )
            else:
                await db.rollback()
                result.skipped += 1
        except Exception as e:
            logger.error(
                "Inactivity decay failed",
                extra={"player_id": player_id, "error": str(e)},
                exc_info=True,
            )
            await db.rollback()
            result.record_failure(player_id, e)

    logger.info("Inactivity decay finished", extra=result.to_dict())
    return result
