"""Pytest configuration and fixtures."""
from datetime import datetime, timedelta, UTC

import pytest
from sqlalchemy.pool import StaticPool

from dbo.config import Settings
from dbo.database import create_engine, create_session_factory, init_models
from dbo.services import build_account_services
from dbo.services.notification_service import NotificationService
from dbo.utils.passwords import SecretHasher

TEST_PASSWORD = "Secret#123"
START_TIME = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


class FrozenClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, start: datetime = START_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingNotificationService(NotificationService):
    """Notifier that remembers every message instead of sending it."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def _record(self, kind, player, **details):
        if self.fail:
            raise ConnectionError("mail relay unavailable")
        self.sent.append((kind, player.player_id, details))

    def of_kind(self, kind):
        return [details for sent_kind, _, details in self.sent if sent_kind == kind]

    async def send_lockout_notice(self, player, failure_count, lockout_end):
        self._record("lockout", player, failure_count=failure_count, lockout_end=lockout_end)

    async def send_confirmation(self, player, token_id):
        self._record("confirmation", player, token_id=token_id)

    async def send_change_notice(self, player, change, *, undo_token_id=None, new_email=None):
        self._record("change", player, change=change, undo_token_id=undo_token_id, new_email=new_email)

    async def send_email_change_confirmation(self, player, new_email, token_id, undo_token_id):
        self._record(
            "email_change_confirmation",
            player,
            new_email=new_email,
            token_id=token_id,
            undo_token_id=undo_token_id,
        )


@pytest.fixture
def settings():
    """Settings for an in-memory database with cheap argon2 parameters."""
    return Settings(
        database_url="sqlite+aiosqlite://",
        environment="test",
        secret_key="test-secret-key-for-dbo-access-tokens",
        argon2_time_cost=1,
        argon2_memory_cost_kib=8,
        argon2_parallelism=1,
    )


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def notifications():
    return RecordingNotificationService()


@pytest.fixture
def hasher(settings):
    return SecretHasher(settings)


@pytest.fixture
async def test_engine(settings):
    """Create a fresh in-memory database per test."""
    engine = create_engine(
        settings,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_models(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db_session(test_engine):
    """Create test database session."""
    session_factory = create_session_factory(test_engine)
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def services(db_session, settings, notifications, clock, hasher):
    return build_account_services(
        db_session, settings, notifications=notifications, clock=clock, hasher=hasher
    )


@pytest.fixture
def player_factory(services, db_session):
    """Factory for registering players, confirmed by default.

    Players come back detached so their attributes stay readable after a
    failed call rolls the session back.
    """
    counter = iter(range(1, 10_000))

    async def _create_player(
        username: str | None = None,
        email: str | None = None,
        password: str = TEST_PASSWORD,
        confirmed: bool = True,
    ):
        n = next(counter)
        username = username or f"player_{n:03d}"
        email = email or f"player{n}@example.com"
        player = await services.players.register(username, password, email)
        if confirmed:
            await services.players.confirm(player.player_id)
        player = await services.players.get_player_by_id(player.player_id)
        db_session.expunge(player)
        return player

    return _create_player
