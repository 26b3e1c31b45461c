"""Refresh token persistence model."""
from datetime import datetime, timedelta, UTC

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from dbo.database import Base
from dbo.models.base import get_id_column, new_id
from dbo.utils.datetime_helpers import ensure_utc


class RefreshToken(Base):
    """Stored refresh tokens; only the argon2 hash of the secret is kept.

    ``id`` is an insertion-ordered surrogate used to break ties between
    tokens created at the same instant.
    """

    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token_id = get_id_column(unique=True, nullable=False, default=new_id)
    player_id = get_id_column(ForeignKey("players.player_id", ondelete="CASCADE"), nullable=False, index=True)
    secret_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)
    revoked = Column(Boolean, default=False, nullable=False)

    player = relationship("Player", back_populates="refresh_tokens")

    def is_expired(self, ttl: timedelta, now: datetime) -> bool:
        """Return True once ``created_at + ttl`` lies in the past."""
        # SQLite returns naive datetimes.
        return ensure_utc(self.created_at) + ttl < now

    def __repr__(self):
        return (f"<RefreshToken(token_id={self.token_id}, player_id={self.player_id}, "
                f"created_at={self.created_at}, revoked={self.revoked})>")
