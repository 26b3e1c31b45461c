"""Base utilities for SQLAlchemy models."""
from enum import Enum
import uuid
from sqlalchemy import Column, String


class CounterId(str, Enum):
    """Global statistic counters kept in the ``counters`` table."""
    PINGS = "pings"
    ACCOUNTS_REGISTERED = "accounts_registered"
    ACCOUNTS_CONFIRMED = "accounts_confirmed"
    ACCOUNTS_REJECTED = "accounts_rejected"
    LOGINS = "logins"
    FAILED_LOGINS = "failed_logins"

    def encode(self) -> str:
        return _COUNTER_NAMES[self]


class UndoFunction(str, Enum):
    """Sensitive change that an undo token can revert."""
    PASSWORD = "password"
    EMAIL = "email"

    def encode(self) -> str:
        return _UNDO_FUNCTION_NAMES[self]


# Stored values must not change if member names do.
_COUNTER_NAMES = {
    CounterId.PINGS: "pings",
    CounterId.ACCOUNTS_REGISTERED: "accounts_registered",
    CounterId.ACCOUNTS_CONFIRMED: "accounts_confirmed",
    CounterId.ACCOUNTS_REJECTED: "accounts_rejected",
    CounterId.LOGINS: "logins",
    CounterId.FAILED_LOGINS: "failed_logins",
}

_UNDO_FUNCTION_NAMES = {
    UndoFunction.PASSWORD: "password",
    UndoFunction.EMAIL: "email",
}


def new_id() -> str:
    """Return a fresh UUID4 string identifier."""
    return str(uuid.uuid4())


def get_id_column(*args, **kwargs):
    """Get a column holding a UUID4 string identifier.

    Args:
        *args: Positional arguments to pass to Column (e.g., ForeignKey)
        **kwargs: Keyword arguments to pass to Column (e.g., primary_key=True)

    Example:
        player_id = get_id_column(primary_key=True, default=new_id)
        owner_id = get_id_column(ForeignKey("players.player_id"), nullable=False)
    """
    return Column(String(36), *args, **kwargs)
