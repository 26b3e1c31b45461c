"""Account flows: registration, confirmation and reversible credential changes."""
from __future__ import annotations

import logging

from dbo.errors import AlreadyConfirmed, AuthenticationFailure, AuthnFailureReason
from dbo.models.base import CounterId, UndoFunction
from dbo.models.player import Player
from dbo.services.confirmation_token_service import ConfirmationTokenService
from dbo.services.counter_service import CounterService
from dbo.services.notification_service import ChangeKind, NotificationService, deliver
from dbo.services.player_service import PlayerService
from dbo.services.refresh_token_service import RefreshTokenService
from dbo.services.undo_token_service import UndoTokenService
from dbo.utils.passwords import SecretHasher

logger = logging.getLogger(__name__)


class AccountService:
    """Orchestrates the credential store and token managers for account changes.

    Emails go out only after the change they describe has been committed.
    """

    def __init__(
        self,
        *,
        players: PlayerService,
        confirmation_tokens: ConfirmationTokenService,
        undo_tokens: UndoTokenService,
        refresh_tokens: RefreshTokenService,
        counters: CounterService,
        notifications: NotificationService,
        hasher: SecretHasher,
    ):
        self.players = players
        self.confirmation_tokens = confirmation_tokens
        self.undo_tokens = undo_tokens
        self.refresh_tokens = refresh_tokens
        self.counters = counters
        self.notifications = notifications
        self.hasher = hasher

    async def _require_password(self, player: Player, password: str) -> None:
        if not self.hasher.verify(password, player.password_hash):
            raise AuthenticationFailure(AuthnFailureReason.BAD_PASSWORD)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------
    async def register_player(self, username: str, password: str, email: str) -> Player:
        player = await self.players.register(username, password, email)
        token_id = await self.confirmation_tokens.issue(player.player_id)
        await deliver(self.notifications.send_confirmation(player, token_id), "registration confirmation")
        await self.counters.increment(CounterId.ACCOUNTS_REGISTERED)
        return player

    async def resend_confirmation(self, player_id: str) -> None:
        """Issue a fresh confirmation token; the previous one stops working."""
        player = await self.players.require_player(player_id)
        if player.confirmed:
            raise AlreadyConfirmed()
        token_id = await self.confirmation_tokens.issue(player_id)
        await deliver(self.notifications.send_confirmation(player, token_id), "registration confirmation")

    async def confirm_registration(self, player_id: str, token_id: str) -> None:
        await self.confirmation_tokens.consume(player_id, token_id)
        await self.counters.increment(CounterId.ACCOUNTS_CONFIRMED)

    async def reject_registration(self, player_id: str, token_id: str) -> None:
        """Delete a registration the email owner never asked for."""
        await self.confirmation_tokens.reject(player_id, token_id)
        await self.counters.increment(CounterId.ACCOUNTS_REJECTED)

    # ------------------------------------------------------------------
    # Password
    # ------------------------------------------------------------------
    async def change_password(self, player_id: str, current_password: str, new_password: str) -> str:
        """Change the password and return the undo token sent to the player."""
        player = await self.players.require_player(player_id)
        await self._require_password(player, current_password)
        await self.players.update_password(player_id, new_password)
        undo_token_id = await self.undo_tokens.issue(player_id, UndoFunction.PASSWORD)
        await deliver(
            self.notifications.send_change_notice(player, ChangeKind.PASSWORD, undo_token_id=undo_token_id),
            "password change notice",
        )
        return undo_token_id

    async def undo_password_change(self, player_id: str, undo_token_id: str, new_password: str) -> None:
        """Take the account back after an unwanted password change.

        Sets ``new_password``, signs out every device and lifts any lockout.
        """
        await self.undo_tokens.verify(player_id, undo_token_id, UndoFunction.PASSWORD)
        await self.players.update_password(player_id, new_password)
        await self.refresh_tokens.revoke_all(player_id)
        await self.players.clear_lockout(player_id)
        await self.undo_tokens.consume_by_function(player_id, UndoFunction.PASSWORD)
        logger.info(f"Password change undone for player {player_id}")

    # ------------------------------------------------------------------
    # Username
    # ------------------------------------------------------------------
    async def change_username(self, player_id: str, new_username: str) -> Player:
        player = await self.players.update_username(player_id, new_username)
        await deliver(
            self.notifications.send_change_notice(player, ChangeKind.USERNAME),
            "username change notice",
        )
        return player

    # ------------------------------------------------------------------
    # Email
    # ------------------------------------------------------------------
    async def request_email_change(self, player_id: str, new_email: str) -> None:
        """Propose ``new_email``; it takes effect once confirmed from that address."""
        player = await self.players.update_proposed_email(player_id, new_email)
        token_id = await self.confirmation_tokens.issue(player_id)
        undo_token_id = await self.undo_tokens.issue(player_id, UndoFunction.EMAIL)
        await deliver(
            self.notifications.send_email_change_confirmation(player, player.proposed_email, token_id, undo_token_id),
            "email change confirmation",
        )
        await deliver(
            self.notifications.send_change_notice(
                player, ChangeKind.EMAIL, undo_token_id=undo_token_id, new_email=player.proposed_email
            ),
            "email change warning",
        )

    async def confirm_email_change(self, player_id: str, token_id: str) -> Player:
        """Promote the proposed email, then use up the token.

        The token survives a failed promotion, so the link can be retried.
        """
        await self.confirmation_tokens.verify(player_id, token_id)
        player = await self.players.confirm_proposed_email(player_id)
        await self.confirmation_tokens.consume_for_email_change(player_id, token_id)
        await self.undo_tokens.consume_by_function(player_id, UndoFunction.EMAIL)
        return player

    async def undo_email_change(self, player_id: str, undo_token_id: str) -> None:
        """Cancel a pending email change and sign out existing sessions."""
        await self.undo_tokens.verify(player_id, undo_token_id, UndoFunction.EMAIL)
        await self.players.clear_proposed_email(player_id)
        await self.confirmation_tokens.discard(player_id)
        await self.undo_tokens.consume_by_function(player_id, UndoFunction.EMAIL)
        logger.info(f"Email change undone for player {player_id}")

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------
    async def delete_account(self, player_id: str, password: str) -> None:
        player = await self.players.require_player(player_id)
        await self._require_password(player, password)
        await self.players.delete_player(player_id)
