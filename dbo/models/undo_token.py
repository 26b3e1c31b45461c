"""Undo token model."""
from datetime import datetime, timedelta, UTC

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint

from dbo.database import Base
from dbo.models.base import get_id_column, new_id
from dbo.utils.datetime_helpers import ensure_utc


class UndoToken(Base):
    """Token allowing a recent sensitive change to be reverted.

    At most one row exists per (player, function); ``function`` holds
    ``UndoFunction.encode()``.
    """

    __tablename__ = "undo_tokens"
    __table_args__ = (
        UniqueConstraint("player_id", "function", name="uq_undo_tokens_player_function"),
    )

    token_id = get_id_column(primary_key=True, default=new_id)
    player_id = get_id_column(ForeignKey("players.player_id", ondelete="CASCADE"), nullable=False)
    function = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)

    def is_expired(self, ttl: timedelta, now: datetime) -> bool:
        return now - ensure_utc(self.created_at) > ttl

    def __repr__(self):
        return (f"<UndoToken(token_id={self.token_id}, player_id={self.player_id}, "
                f"function={self.function})>")
