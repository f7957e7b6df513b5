# src/clubrank/notifications.py

"""Notification dispatch contract.

Delivery channels (push, WhatsApp, email) live outside this service. The
workflow only hands a template kind and a payload to a ``Notifier``; a failed
delivery is logged and never undoes or blocks a state transition.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    """Template kinds understood by the delivery service."""

    MATCH_REPORTED = "match_reported"
    MATCH_REMINDER = "match_reminder"
    MATCH_CONFIRMED = "match_confirmed"
    MATCH_AUTO_VALIDATED = "match_auto_validated"
    MATCH_CONTESTED = "match_contested"
    MATCH_CONTESTED_ADMIN = "match_contested_admin"
    CONTEST_RESOLVED = "contest_resolved"


class Notifier(Protocol):
    async def notify(
        self, player_id: int, kind: NotificationKind, payload: dict[str, Any]
    ) -> None: ...


class LoggingNotifier:
    """Default notifier: writes the notification to the application log."""

    async def notify(
        self, player_id: int, kind: NotificationKind, payload: dict[str, Any]
    ) -> None:
        logger.info(
            "Notification %s for player %s",
            kind.value,
            player_id,
            extra={"player_id": player_id, "kind": kind.value, "payload": payload},
        )


async def dispatch(
    notifier: Notifier,
    player_id: int,
    kind: NotificationKind,
    payload: dict[str, Any],
) -> bool:
    """Fire-and-forget delivery. Returns False when the notifier failed."""
    try:
        await notifier.notify(player_id, kind, payload)
    except Exception as e:
        logger.warning(
            "Notification delivery failed",
            extra={"player_id": player_id, "kind": kind.value, "error": str(e)},
            exc_info=True,
        )
        return False
    return True
