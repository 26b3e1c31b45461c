"""Issue and verify short-lived signed access tokens."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, UTC

from dbo.config import Settings
from dbo.errors import InvalidToken, TokenExpired
from dbo.utils.datetime_helpers import Clock, utc_now
from dbo.utils.simple_jwt import encode_jwt, decode_jwt, InvalidTokenError

logger = logging.getLogger(__name__)

ACCEPTED_ALGORITHMS = ("HS256",)
REQUIRED_CLAIMS = ("sub", "iat", "exp")


@dataclass(frozen=True)
class AccessTokenPayload:
    sub: str
    iat: int
    exp: int

    @property
    def issued_at(self) -> datetime:
        return datetime.fromtimestamp(self.iat, UTC)


class AccessTokenCodec:
    """Stateless HS256 access tokens carrying ``sub``, ``iat`` and ``exp``.

    Expiry is judged against the injected clock rather than the system
    time, so PyJWT's own ``exp`` check is disabled.
    """

    def __init__(self, settings: Settings, clock: Clock = utc_now):
        self.settings = settings
        self.clock = clock
        self.lifetime = timedelta(minutes=settings.access_token_exp_minutes)

    def issue(self, player_id: str) -> str:
        now = int(self.clock().timestamp())
        payload = {
            "sub": str(player_id),
            "iat": now,
            "exp": now + int(self.lifetime.total_seconds()),
        }
        return encode_jwt(payload, self.settings.secret_key, algorithm=self.settings.jwt_algorithm)

    def verify(self, token: str) -> AccessTokenPayload:
        try:
            claims = decode_jwt(
                token,
                self.settings.secret_key,
                algorithms=ACCEPTED_ALGORITHMS,
                require=REQUIRED_CLAIMS,
                verify_exp=False,
            )
        except InvalidTokenError as exc:
            logger.debug(f"Rejected access token: {exc}")
            raise InvalidToken() from exc

        try:
            payload = AccessTokenPayload(
                sub=str(claims["sub"]), iat=int(claims["iat"]), exp=int(claims["exp"])
            )
        except (TypeError, ValueError) as exc:
            raise InvalidToken() from exc

        if self.clock().timestamp() > payload.exp:
            raise TokenExpired()
        return payload
