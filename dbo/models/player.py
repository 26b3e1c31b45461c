"""Player account model."""
from __future__ import annotations

from datetime import UTC, datetime
from typing import Iterable, Iterator

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from dbo.database import Base
from dbo.models.base import get_id_column, new_id
from dbo.utils.datetime_helpers import ensure_utc

PASSWORD_HISTORY_SIZE = 4


class PasswordHistory:
    """Bounded ring of previous password hashes, newest first."""

    def __init__(self, hashes: Iterable[str] | None = None, capacity: int = PASSWORD_HISTORY_SIZE):
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._hashes = [h for h in (hashes or []) if h][:capacity]

    def push(self, password_hash: str) -> None:
        """Insert ``password_hash`` as the newest entry, evicting the oldest when full."""
        self._hashes.insert(0, password_hash)
        del self._hashes[self.capacity:]

    def to_list(self) -> list[str]:
        return list(self._hashes)

    def __iter__(self) -> Iterator[str]:
        return iter(self._hashes)

    def __len__(self) -> int:
        return len(self._hashes)


class Player(Base):
    """Player account: credentials, lockout counters and session marker.

    ``username_canonical`` and ``email_canonical`` hold the lowercase forms
    and carry the case-insensitive uniqueness constraints.
    """

    __tablename__ = "players"

    player_id = get_id_column(primary_key=True, default=new_id)
    username = Column(String(16), nullable=False)
    username_canonical = Column(String(16), unique=True, nullable=False)
    email = Column(String(255), nullable=False)
    email_canonical = Column(String(255), unique=True, nullable=False)
    proposed_email = Column(String(255), nullable=True)
    password_hash = Column(String(255), nullable=False)
    last_passwords = Column(JSON, default=list, nullable=False)
    confirmed = Column(Boolean, default=False, nullable=False)
    failed_logins = Column(Integer, default=0, nullable=False)
    locked_until = Column(DateTime(timezone=True), nullable=True)
    session_valid_after = Column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    last_login = Column(DateTime(timezone=True), nullable=True)

    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="player",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def password_history(self) -> PasswordHistory:
        return PasswordHistory(self.last_passwords or [])

    def lockout_end(self, now: datetime) -> datetime | None:
        """Return the lockout end if the account is locked at ``now``."""
        locked_until = ensure_utc(self.locked_until)
        if locked_until is not None and locked_until > now:
            return locked_until
        return None

    def __repr__(self):
        return (f"<Player(player_id={self.player_id}, username={self.username}, "
                f"confirmed={self.confirmed})>")
