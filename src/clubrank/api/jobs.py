# src/clubrank/api/jobs.py

"""Entry points for the scheduled jobs, called by cron with a bearer secret."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from clubrank.api.deps import get_clock, get_engine, get_notifier, require_cron_secret
from clubrank.clock import Clock
from clubrank.config import Settings, get_settings
from clubrank.db.session import get_db
from clubrank.notifications import Notifier
from clubrank.rating.elo_engine import EloEngine
from clubrank.schemas.jobs import SweepResultRead
from clubrank.services import decay_service, scheduler

router = APIRouter(
    prefix="/jobs",
    tags=["Jobs"],
    dependencies=[Depends(require_cron_secret)],
)


@router.post("/reminders", response_model=SweepResultRead)
async def run_reminders(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
) -> SweepResultRead:
    """Send the confirmation reminder for matches pending for a few hours."""
    result = await scheduler.run_reminder_sweep(
        db, clock=clock, notifier=notifier, settings=settings
    )
    return SweepResultRead(job="reminders", **result.to_dict())


@router.post("/auto-validate", response_model=SweepResultRead)
async def run_auto_validate(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
    engine: EloEngine = Depends(get_engine),
) -> SweepResultRead:
    """Auto-validate pending matches whose confirmation window has closed."""
    result = await scheduler.run_auto_validate_sweep(
        db, clock=clock, notifier=notifier, settings=settings, engine=engine
    )
    return SweepResultRead(job="auto-validate", **result.to_dict())


@router.post("/inactivity-decay", response_model=SweepResultRead)
async def run_inactivity_decay(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    settings: Settings = Depends(get_settings),
) -> SweepResultRead:
    """Apply the daily inactivity decay."""
    result = await decay_service.run_inactivity_decay(
        db, clock=clock, settings=settings
    )
    return SweepResultRead(job="inactivity-decay", **result.to_dict())
