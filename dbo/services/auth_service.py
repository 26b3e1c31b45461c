"""Login protocol: password login, refresh rotation, access token checks."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from dbo.errors import (
    AccountLocked,
    AuthenticationFailure,
    AuthnFailureReason,
    InternalConflict,
    TokenExpired,
    TokenRevoked,
)
from dbo.models.base import CounterId
from dbo.models.player import Player
from dbo.services.access_token_service import AccessTokenCodec
from dbo.services.counter_service import CounterService
from dbo.services.notification_service import NotificationService, deliver
from dbo.services.player_service import PlayerService
from dbo.services.refresh_token_service import (
    RefreshTokenService,
    format_cookie_value,
    parse_cookie_value,
)
from dbo.utils.datetime_helpers import Clock, ensure_utc, utc_now
from dbo.utils.passwords import SecretHasher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginTokens:
    """Tokens handed to a client after login or refresh."""

    player_id: str
    access_token: str
    refresh_token_id: str
    refresh_secret: str
    expires_in: int

    @property
    def refresh_cookie_value(self) -> str:
        return format_cookie_value(self.refresh_token_id, self.refresh_secret)


class AuthService:
    """Authenticates players and manages their session tokens."""

    def __init__(
        self,
        *,
        players: PlayerService,
        refresh_tokens: RefreshTokenService,
        access_tokens: AccessTokenCodec,
        counters: CounterService,
        notifications: NotificationService,
        hasher: SecretHasher,
        clock: Clock = utc_now,
    ):
        self.players = players
        self.refresh_tokens = refresh_tokens
        self.access_tokens = access_tokens
        self.counters = counters
        self.notifications = notifications
        self.hasher = hasher
        self.clock = clock

    @property
    def access_token_lifetime_seconds(self) -> int:
        return int(self.access_tokens.lifetime.total_seconds())

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------
    async def login(self, subject: str, password: str) -> LoginTokens:
        """Log in with a username or email and a password.

        Raises:
            AuthenticationFailure: unknown subject or wrong password
            InternalConflict: the player has not confirmed their email yet
            AccountLocked: a lockout is active, or this failure started one
        """
        player = await self.players.find_by_credential_subject(subject)
        if player is None:
            await self.counters.increment(CounterId.FAILED_LOGINS)
            raise AuthenticationFailure(AuthnFailureReason.BAD_LOGIN_CREDENTIALS)

        if not player.confirmed:
            raise InternalConflict("player_unconfirmed")

        # No password hashing while locked.
        lockout_end = player.lockout_end(self.clock())
        if lockout_end is not None:
            raise AccountLocked(lockout_end)

        if not self.hasher.verify(password, player.password_hash):
            failed = await self.players.record_failed_login(player.player_id)
            await self.counters.increment(CounterId.FAILED_LOGINS)
            if failed.locked_until is not None:
                await deliver(
                    self.notifications.send_lockout_notice(player, failed.failed_logins, failed.locked_until),
                    "lockout notice",
                )
                raise AccountLocked(failed.locked_until)
            logger.info(f"Failed login for player {player.player_id} ({failed.failed_logins} in a row)")
            raise AuthenticationFailure(AuthnFailureReason.BAD_LOGIN_CREDENTIALS)

        access_token = self.access_tokens.issue(player.player_id)
        token_id, secret = await self.refresh_tokens.issue(player.player_id)
        try:
            await self.players.record_successful_login(player.player_id)
        except AccountLocked:
            # A concurrent failure locked the account after our password check.
            await self.refresh_tokens.revoke(token_id)
            raise
        await self.counters.increment(CounterId.LOGINS)

        logger.info(f"Player {player.player_id} logged in")
        return LoginTokens(
            player_id=player.player_id,
            access_token=access_token,
            refresh_token_id=token_id,
            refresh_secret=secret,
            expires_in=self.access_token_lifetime_seconds,
        )

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------
    async def refresh(self, cookie_value: str | None) -> LoginTokens:
        """Exchange a refresh cookie for a new access token and a rotated refresh token.

        Refresh tokens created before the player's last credential change are
        revoked on sight.
        """
        token_id, secret = parse_cookie_value(cookie_value)
        token = await self.refresh_tokens.verify(token_id, secret)

        player = await self.players.get_player_by_id(token.player_id)
        if player is None:
            raise AuthenticationFailure(AuthnFailureReason.PLAYER_NOT_FOUND)

        if ensure_utc(token.created_at) < ensure_utc(player.session_valid_after):
            logger.warning(f"Refresh token {token_id} predates session reset for player {player.player_id}")
            await self.refresh_tokens.revoke(token_id)
            raise TokenRevoked()

        player_id, new_token_id, new_secret = await self.refresh_tokens.rotate(token_id, secret, verified=token)
        return LoginTokens(
            player_id=player_id,
            access_token=self.access_tokens.issue(player_id),
            refresh_token_id=new_token_id,
            refresh_secret=new_secret,
            expires_in=self.access_token_lifetime_seconds,
        )

    async def authenticate(self, access_token: str) -> Player:
        """Resolve a bearer access token to its player.

        Raises:
            InvalidToken: malformed, wrongly signed or wrong algorithm
            TokenExpired: past its ``exp``
            AuthenticationFailure: player gone, or token issued before the
                player's sessions were reset
        """
        payload = self.access_tokens.verify(access_token)
        player = await self.players.get_player_by_id(payload.sub)
        if player is None:
            raise AuthenticationFailure(AuthnFailureReason.PLAYER_NOT_FOUND)

        # Token timestamps have whole-second precision.
        session_valid_after = ensure_utc(player.session_valid_after)
        if payload.iat < int(session_valid_after.timestamp()):
            raise AuthenticationFailure(AuthnFailureReason.PREMATURE_ACCESS_TOKEN)
        return player

    async def logout(self, cookie_value: str | None) -> None:
        """Revoke the presented refresh token. Repeating a logout is harmless."""
        token_id, secret = parse_cookie_value(cookie_value)
        try:
            await self.refresh_tokens.verify(token_id, secret)
        except (TokenExpired, TokenRevoked):
            return
        await self.refresh_tokens.revoke(token_id)
        logger.info(f"Revoked refresh token {token_id} on logout")
