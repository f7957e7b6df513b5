# src/clubrank/services/scheduler.py

"""Time-driven sweeps over pending matches.

Each sweep is meant to run from cron every few minutes. Items are processed
one transaction at a time: a failure is logged and counted, and the sweep
moves on. Running a sweep twice in a row is harmless, since every item is
claimed through a conditional update.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clubrank.clock import Clock, SystemClock
from clubrank.config import Settings, get_settings
from clubrank.db import models
from clubrank.notifications import LoggingNotifier, NotificationKind, Notifier, dispatch
from clubrank.rating.elo_engine import EloEngine
from clubrank.services import validation_service
from clubrank.services.validation_service import PENDING, guarded_match_update

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Summary of one batch run.

    Attributes:
        processed: Items the sweep looked at
        succeeded: Items it changed
        failed: Items that raised; details are in ``errors``
        skipped: Items another transition handled first, or with nothing to do
    """

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[dict] = field(default_factory=list)

    def record_failure(self, item_id: int, error: Exception) -> None:
        self.failed += 1
        self.errors.append({"id": item_id, "error": str(error)})

    def to_dict(self) -> dict:
        return asdict(self)


async def run_reminder_sweep(
    db: AsyncSession,
    *,
    clock: Clock | None = None,
    notifier: Notifier | None = None,
    settings: Settings | None = None,
) -> SweepResult:
    """Send the single reminder for matches left unconfirmed for a few hours."""
    clock = clock or SystemClock()
    notifier = notifier or LoggingNotifier()
    settings = settings or get_settings()

    now = clock.now()
    cutoff = now - timedelta(hours=settings.reminder_after_hours)
    query = (
        select(models.Match.id)
        .where(
            models.Match.status == PENDING,
            models.Match.reminder_sent_at.is_(None),
            models.Match.created_at <= cutoff,
            models.Match.auto_validate_at > now,
        )
        .order_by(models.Match.id)
    )
    match_ids = (await db.execute(query)).scalars().all()

    result = SweepResult()
    for match_id in match_ids:
        result.processed += 1
        try:
            claimed = await db.execute(
                guarded_match_update(
                    match_id,
                    models.Match.status == PENDING,
                    models.Match.reminder_sent_at.is_(None),
                ).values(reminder_sent_at=now)
            )
            if claimed.rowcount != 1:
                await db.rollback()
                result.skipped += 1
                continue
            await db.commit()

            match = await db.get(models.Match, match_id, populate_existing=True)
            seconds_left = max(0, int((match.auto_validate_at - now).total_seconds()))
            await dispatch(
                notifier,
                match.opponent_of(match.reported_by),
                NotificationKind.MATCH_REMINDER,
                {
                    "match_id": match.id,
                    "reporter_id": match.reported_by,
                    "hours_left": seconds_left // 3600,
                },
            )
            result.succeeded += 1
        except Exception as e:
            logger.error(
                "Reminder failed",
                extra={"match_id": match_id, "error": str(e)},
                exc_info=True,
            )
            await db.rollback()
            result.record_failure(match_id, e)

    logger.info("Reminder sweep finished", extra=result.to_dict())
    return result


async def run_auto_validate_sweep(
    db: AsyncSession,
    *,
    clock: Clock | None = None,
    notifier: Notifier | None = None,
    settings: Settings | None = None,
    engine: EloEngine | None = None,
) -> SweepResult:
    """Auto-validate every pending match whose deadline has passed."""
    clock = clock or SystemClock()
    settings = settings or get_settings()

    now = clock.now()
    query = (
        select(models.Match.id)
        .where(
            models.Match.status == PENDING,
            models.Match.auto_validate_at <= now,
        )
        .order_by(models.Match.auto_validate_at, models.Match.id)
    )
    match_ids = (await db.execute(query)).scalars().all()

    result = SweepResult()
    for match_id in match_ids:
        result.processed += 1
        try:
            outcome = await validation_service.auto_validate_match(
                db,
                match_id,
                clock=clock,
                notifier=notifier,
                settings=settings,
                engine=engine,
            )
        except Exception as e:
            logger.error(
                "Auto-validation failed",
                extra={"match_id": match_id, "error": str(e)},
                exc_info=True,
            )
            result.record_failure(match_id, e)
            continue

        if outcome.changed:
            result.succeeded += 1
        else:
            result.skipped += 1

    logger.info("Auto-validate sweep finished", extra=result.to_dict())
    return result
