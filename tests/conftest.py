# tests/conftest.py

"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta
from typing import Any, AsyncGenerator

import pytest
from clubrank.api.deps import get_clock, get_notifier
from clubrank.clock import FrozenClock
from clubrank.config import Settings, get_settings
from clubrank.db import models
from clubrank.db.models import Base
from clubrank.db.session import get_db
from clubrank.main import app
from clubrank.notifications import NotificationKind
from clubrank.services import validation_service
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# A Wednesday, so tests can move a few days either way inside one ISO week
START = datetime(2026, 1, 14, 12, 0, 0)

CRON_SECRET = "test-cron-secret"


class RecordingNotifier:
    """Collects notifications instead of delivering them."""

    def __init__(self) -> None:
        self.sent: list[tuple[int, NotificationKind, dict[str, Any]]] = []

    async def notify(
        self, player_id: int, kind: NotificationKind, payload: dict[str, Any]
    ) -> None:
        self.sent.append((player_id, kind, payload))

    def kinds_for(self, player_id: int) -> list[NotificationKind]:
        return [kind for pid, kind, _ in self.sent if pid == player_id]


class FailingNotifier:
    """A delivery channel that is always down."""

    async def notify(
        self, player_id: int, kind: NotificationKind, payload: dict[str, Any]
    ) -> None:
        raise ConnectionError("push gateway unavailable")


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """A fresh in-memory database per test."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """
    Fixture to provide a database session to a test.

    Services commit and roll back on their own, so every test gets its own
    database instead of an outer transaction.
    """
    session_factory = async_sessionmaker(
        bind=engine, expire_on_commit=False, autocommit=False, autoflush=False
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(START)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, cron_secret=CRON_SECRET)


@pytest.fixture
async def async_client(
    db_session: AsyncSession,
    clock: FrozenClock,
    notifier: RecordingNotifier,
    settings: Settings,
) -> AsyncGenerator[AsyncClient, None]:
    """Fixture to provide an async test client for the API."""

    # Override the get_db dependency to use the test database
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_settings] = lambda: settings

    transport = ASGITransport(app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    # Clean up the overrides after the test
    app.dependency_overrides.clear()


# =============================================================================
# Helpers shared by the service tests
# =============================================================================


async def make_player(
    db: AsyncSession,
    name: str,
    club_id: int = 1,
    rating: int = 1200,
    **kw: Any,
) -> int:
    """Create a player and return its id."""
    player = models.Player(name=name, club_id=club_id, current_rating=rating, **kw)
    db.add(player)
    await db.commit()
    return player.id


async def fetch_player(db: AsyncSession, player_id: int) -> models.Player:
    """Load the current state of a player, bypassing stale identity map state."""
    return await db.get(models.Player, player_id, populate_existing=True)


async def fetch_match(db: AsyncSession, match_id: int) -> models.Match:
    """Load the current state of a match."""
    return await db.get(models.Match, match_id, populate_existing=True)


async def report(
    db: AsyncSession,
    clock: FrozenClock,
    settings: Settings,
    reporter_id: int,
    opponent_id: int,
    score: str = "6-4 6-3",
    match_format: str = "three_sets",
    notifier: Any = None,
    **kw: Any,
) -> int:
    """Report a match played two hours ago and return its id."""
    match = await validation_service.report_match(
        db,
        reporter_id,
        opponent_id,
        score,
        match_format,
        clock.now() - timedelta(hours=2),
        clock=clock,
        notifier=notifier or RecordingNotifier(),
        settings=settings,
        **kw,
    )
    return match.id
