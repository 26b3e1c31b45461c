from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from dbo.config import Settings
from dbo.services.access_token_service import AccessTokenCodec, AccessTokenPayload
from dbo.services.account_service import AccountService
from dbo.services.auth_service import AuthService, LoginTokens
from dbo.services.confirmation_token_service import ConfirmationTokenService
from dbo.services.counter_service import CounterService
from dbo.services.lockout_policy import failures_to_lockout
from dbo.services.notification_service import (
    ChangeKind,
    LoggingNotificationService,
    NotificationService,
)
from dbo.services.player_service import FailedLogin, PlayerService
from dbo.services.refresh_token_service import (
    RefreshTokenService,
    format_cookie_value,
    parse_cookie_value,
)
from dbo.services.undo_token_service import UndoTokenService
from dbo.utils.datetime_helpers import Clock, utc_now
from dbo.utils.passwords import SecretHasher


@dataclass
class AccountServices:
    """Every account service wired to one database session."""

    players: PlayerService
    refresh_tokens: RefreshTokenService
    confirmation_tokens: ConfirmationTokenService
    undo_tokens: UndoTokenService
    counters: CounterService
    access_tokens: AccessTokenCodec
    auth: AuthService
    accounts: AccountService


def build_account_services(
    db: AsyncSession,
    settings: Settings,
    *,
    notifications: NotificationService,
    clock: Clock = utc_now,
    hasher: SecretHasher | None = None,
) -> AccountServices:
    """Construct the account services for ``db``.

    ``hasher`` can be shared across sessions; a new one is built from
    ``settings`` when omitted.
    """
    hasher = hasher or SecretHasher(settings)
    players = PlayerService(db, settings, hasher, clock)
    refresh_tokens = RefreshTokenService(db, settings, hasher, clock)
    confirmation_tokens = ConfirmationTokenService(db, settings, clock)
    undo_tokens = UndoTokenService(db, settings, clock)
    counters = CounterService(db)
    access_tokens = AccessTokenCodec(settings, clock)

    auth = AuthService(
        players=players,
        refresh_tokens=refresh_tokens,
        access_tokens=access_tokens,
        counters=counters,
        notifications=notifications,
        hasher=hasher,
        clock=clock,
    )
    accounts = AccountService(
        players=players,
        confirmation_tokens=confirmation_tokens,
        undo_tokens=undo_tokens,
        refresh_tokens=refresh_tokens,
        counters=counters,
        notifications=notifications,
        hasher=hasher,
    )
    return AccountServices(
        players=players,
        refresh_tokens=refresh_tokens,
        confirmation_tokens=confirmation_tokens,
        undo_tokens=undo_tokens,
        counters=counters,
        access_tokens=access_tokens,
        auth=auth,
        accounts=accounts,
    )


__all__ = [
    "AccessTokenCodec",
    "AccessTokenPayload",
    "AccountService",
    "AccountServices",
    "AuthService",
    "ChangeKind",
    "ConfirmationTokenService",
    "CounterService",
    "FailedLogin",
    "LoggingNotificationService",
    "LoginTokens",
    "NotificationService",
    "PlayerService",
    "RefreshTokenService",
    "UndoTokenService",
    "build_account_services",
    "failures_to_lockout",
    "format_cookie_value",
    "parse_cookie_value",
]
