"""Email confirmation token model."""
from datetime import datetime, timedelta, UTC

from sqlalchemy import Column, DateTime, ForeignKey

from dbo.database import Base
from dbo.models.base import get_id_column, new_id
from dbo.utils.datetime_helpers import ensure_utc


class ConfirmationToken(Base):
    """Single live email confirmation token per player (unique ``player_id``)."""

    __tablename__ = "confirmation_tokens"

    token_id = get_id_column(primary_key=True, default=new_id)
    player_id = get_id_column(
        ForeignKey("players.player_id", ondelete="CASCADE"), unique=True, nullable=False
    )
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)

    def is_expired(self, ttl: timedelta, now: datetime) -> bool:
        return now - ensure_utc(self.created_at) > ttl

    def __repr__(self):
        return f"<ConfirmationToken(token_id={self.token_id}, player_id={self.player_id})>"
