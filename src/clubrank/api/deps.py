# src/clubrank/api/deps.py

"""Shared FastAPI dependencies.

Identity, time, notification delivery and admin authorization are owned by
other services; these dependencies are the seams where they plug in, and
where tests override them.
"""

import logging
import secrets

from fastapi import Depends, Header, HTTPException, status

from clubrank.clock import Clock, SystemClock
from clubrank.config import Settings, get_settings
from clubrank.notifications import LoggingNotifier, Notifier
from clubrank.rating.elo_engine import EloEngine
from clubrank.services.validation_service import AdminCheck

logger = logging.getLogger(__name__)

_system_clock = SystemClock()
_logging_notifier = LoggingNotifier()


def get_clock() -> Clock:
    return _system_clock


def get_notifier() -> Notifier:
    return _logging_notifier


def get_engine(settings: Settings = Depends(get_settings)) -> EloEngine:
    return EloEngine(upset_threshold=settings.upset_threshold)


def get_admin_check() -> AdminCheck | None:
    """Admin capability check; None selects the club admin flag on Player."""
    return None


async def get_current_player_id(
    x_player_id: int | None = Header(default=None),
) -> int:
    """
    Resolve the acting player.

    The session service in front of this API forwards the authenticated
    player's id in the ``X-Player-Id`` header.

    Raises:
        401 Unauthorized: If the header is missing
    """
    if x_player_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return x_player_id


async def require_cron_secret(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Guard for the scheduled job endpoints.

    Raises:
        503 Service Unavailable: If no cron secret is configured
        401 Unauthorized: If the bearer token is missing or wrong
    """
    if not settings.cron_secret:
        logger.error("Job endpoint called but no cron secret is configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scheduled jobs are not configured",
        )

    expected = f"Bearer {settings.cron_secret}"
    if authorization is None or not secrets.compare_digest(authorization, expected):
        logger.warning("Rejected job call with invalid credentials")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret",
        )
