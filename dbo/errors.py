"""Error taxonomy for the player account core.

Every failure the account services report derives from ``AccountError`` and
carries a stable snake_case ``code``. The HTTP layer maps codes to responses;
nothing here knows about status codes.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional


class AuthnFailureReason(str, Enum):
    """Why authentication failed. Never exposed to clients verbatim."""

    BAD_LOGIN_CREDENTIALS = "bad_login_credentials"
    BAD_PASSWORD = "bad_password"
    PREMATURE_ACCESS_TOKEN = "premature_access_token"
    NON_PARSEABLE_COOKIE = "non_parseable_cookie"
    BAD_COOKIE_CREDENTIALS = "bad_cookie_credentials"
    PLAYER_NOT_FOUND = "player_not_found"


class AccountError(RuntimeError):
    """Base class for all account service errors."""

    code: str = "account_error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.code)


class AuthenticationFailure(AccountError):
    """Credentials or tokens could not be matched to a player."""

    code = "authentication_failure"

    def __init__(self, reason: AuthnFailureReason = AuthnFailureReason.BAD_LOGIN_CREDENTIALS) -> None:
        super().__init__(self.code)
        self.reason = reason


class AccountLocked(AccountError):
    """Login is suspended until ``until``."""

    code = "account_locked"

    def __init__(self, until: datetime) -> None:
        super().__init__(f"account_locked_until:{until.isoformat()}")
        self.until = until


class TokenExpired(AccountError):
    code = "token_expired"


class TokenRevoked(AccountError):
    code = "token_revoked"


class InvalidToken(AccountError):
    """Malformed token, bad signature or disallowed algorithm."""

    code = "invalid_token"


class RelationalConflict(AccountError):
    """A token does not belong to the player it was presented for."""

    code = "relational_conflict"


class InternalConflict(AccountError):
    """The player's current state does not allow the operation."""

    code = "internal_conflict"


class AlreadyConfirmed(InternalConflict):
    code = "already_confirmed"


class NoProposedChange(InternalConflict):
    code = "no_proposed_change"


class UniquenessViolation(AccountError):
    """Username and/or email already belong to another player."""

    code = "uniqueness_violation"

    def __init__(self, username_taken: bool, email_taken: bool) -> None:
        super().__init__(self.code)
        self.username_taken = username_taken
        self.email_taken = email_taken


class PolicyViolation(AccountError):
    """Input failed format rules. ``problems`` maps field name to messages."""

    code = "policy_violation"

    def __init__(self, problems: dict[str, list[str]]) -> None:
        super().__init__(self.code)
        self.problems = problems


class ReusedCredential(AccountError):
    """New password matches the current one or one in the recent history."""

    code = "reused_credential"


class NotFound(AccountError):
    code = "not_found"

    def __init__(self, collection: str) -> None:
        super().__init__(f"{collection}_not_found")
        self.collection = collection


class AdapterFault(AccountError):
    """Hashing, storage, signing or notification infrastructure failed."""

    code = "adapter_fault"
