"""Tests for datetime helper utilities."""
from datetime import UTC, datetime, timedelta, timezone

from dbo.models.player import Player
from dbo.utils.datetime_helpers import ensure_utc, utc_now


def test_ensure_utc_none_returns_none():
    assert ensure_utc(None) is None


def test_ensure_utc_attaches_timezone_to_naive_datetime():
    """Naive datetimes read back from SQLite are marked as UTC without shifting."""
    naive = datetime(2026, 3, 1, 12, 30, 0)

    result = ensure_utc(naive)

    assert result.tzinfo is UTC
    assert result.replace(tzinfo=None) == naive


def test_ensure_utc_converts_from_other_timezones_to_utc():
    eastern = timezone(timedelta(hours=-4))
    aware = datetime(2026, 3, 1, 8, 0, tzinfo=eastern)

    result = ensure_utc(aware)

    assert result.tzinfo is UTC
    assert result.replace(tzinfo=None) == datetime(2026, 3, 1, 12, 0)


def test_utc_now_is_aware():
    assert utc_now().tzinfo is UTC


def test_lockout_end_handles_naive_storage():
    now = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    player = Player(locked_until=datetime(2026, 3, 1, 12, 15))

    assert player.lockout_end(now) == datetime(2026, 3, 1, 12, 15, tzinfo=UTC)
    assert player.lockout_end(now + timedelta(minutes=15)) is None
