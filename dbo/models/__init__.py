"""Database models."""
from dbo.models.base import CounterId, UndoFunction
from dbo.models.player import Player, PasswordHistory, PASSWORD_HISTORY_SIZE
from dbo.models.refresh_token import RefreshToken
from dbo.models.confirmation_token import ConfirmationToken
from dbo.models.undo_token import UndoToken
from dbo.models.counter import Counter

__all__ = [
    "CounterId",
    "UndoFunction",
    "Player",
    "PasswordHistory",
    "PASSWORD_HISTORY_SIZE",
    "RefreshToken",
    "ConfirmationToken",
    "UndoToken",
    "Counter",
]
