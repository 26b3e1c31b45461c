"""Outbound account notifications (confirmation links, security notices).

``NotificationService`` is the contract the account flows depend on.
``LoggingNotificationService`` writes the messages to the log instead of
sending them, which is what development and tests use.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Awaitable, Optional

from dbo.config import Settings
from dbo.errors import AccountError, AdapterFault
from dbo.models.player import Player

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    PASSWORD = "password"
    USERNAME = "username"
    EMAIL = "email"


def redact_email(email: str) -> str:
    """Redact an email address for logging."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class NotificationService(ABC):
    """Sends templated account emails to players."""

    @abstractmethod
    async def send_lockout_notice(self, player: Player, failure_count: int, lockout_end: datetime) -> None:
        """Tell the player their account is locked until ``lockout_end``."""

    @abstractmethod
    async def send_confirmation(self, player: Player, token_id: str) -> None:
        """Send the registration confirmation link to the player's email."""

    @abstractmethod
    async def send_change_notice(
        self,
        player: Player,
        change: ChangeKind,
        *,
        undo_token_id: Optional[str] = None,
        new_email: Optional[str] = None,
    ) -> None:
        """Warn the player's current address that ``change`` happened."""

    @abstractmethod
    async def send_email_change_confirmation(
        self, player: Player, new_email: str, token_id: str, undo_token_id: str
    ) -> None:
        """Send the confirmation link for a proposed email to ``new_email``."""


class LoggingNotificationService(NotificationService):
    """Development notifier: logs each message instead of emailing it."""

    def __init__(self, settings: Settings):
        self.base_url = settings.frontend_url.rstrip("/")

    def _link(self, path: str, player: Player, token_id: str) -> str:
        return f"{self.base_url}/{path}?player={player.player_id}&token={token_id}"

    def _log(self, to_email: str, subject: str, body: str) -> None:
        logger.info(f"email_dev_mode to={redact_email(to_email)} subject={subject!r} body={body!r}")

    async def send_lockout_notice(self, player: Player, failure_count: int, lockout_end: datetime) -> None:
        self._log(
            player.email,
            "Your account has been locked",
            f"{failure_count} failed logins; locked until {lockout_end.isoformat()}",
        )

    async def send_confirmation(self, player: Player, token_id: str) -> None:
        self._log(
            player.email,
            "Confirm your registration",
            f"confirm: {self._link('confirm', player, token_id)} "
            f"reject: {self._link('reject', player, token_id)}",
        )

    async def send_change_notice(
        self,
        player: Player,
        change: ChangeKind,
        *,
        undo_token_id: Optional[str] = None,
        new_email: Optional[str] = None,
    ) -> None:
        body = f"Your {change.value} was changed."
        if new_email:
            body += f" A change to {redact_email(new_email)} was requested."
        if undo_token_id:
            body += f" undo: {self._link(f'undo/{change.value}', player, undo_token_id)}"
        self._log(player.email, f"Your {change.value} was changed", body)

    async def send_email_change_confirmation(
        self, player: Player, new_email: str, token_id: str, undo_token_id: str
    ) -> None:
        self._log(
            new_email,
            "Confirm your new email address",
            f"confirm: {self._link('confirm-email', player, token_id)} "
            f"cancel: {self._link('undo/email', player, undo_token_id)}",
        )


async def deliver(send: Awaitable[None], description: str) -> None:
    """Await a notifier call, reporting any failure as ``AdapterFault``."""
    try:
        await send
    except AccountError:
        raise
    except Exception as exc:
        logger.error(f"Failed to send {description}", exc_info=True)
        raise AdapterFault("notification_failed") from exc
