"""Long-lived rotating refresh tokens."""
from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dbo.config import Settings
from dbo.database import transaction
from dbo.errors import AuthenticationFailure, AuthnFailureReason, NotFound, TokenExpired, TokenRevoked
from dbo.models.base import new_id
from dbo.models.refresh_token import RefreshToken
from dbo.utils.datetime_helpers import Clock, utc_now
from dbo.utils.passwords import SecretHasher, generate_secret

logger = logging.getLogger(__name__)

MAX_TOKENS_PER_PLAYER = 3
COOKIE_SEPARATOR = ":"


def format_cookie_value(token_id: str, secret: str) -> str:
    return f"{token_id}{COOKIE_SEPARATOR}{secret}"


def parse_cookie_value(value: str | None) -> tuple[str, str]:
    """Split a refresh cookie into ``(token_id, secret)`` on the first colon.

    Raises:
        AuthenticationFailure: when either part is missing
    """
    if not value or COOKIE_SEPARATOR not in value:
        raise AuthenticationFailure(AuthnFailureReason.NON_PARSEABLE_COOKIE)
    token_id, secret = value.split(COOKIE_SEPARATOR, 1)
    if not token_id or not secret:
        raise AuthenticationFailure(AuthnFailureReason.NON_PARSEABLE_COOKIE)
    return token_id, secret


class RefreshTokenService:
    """Issues, verifies, rotates and revokes refresh tokens.

    Only the argon2 hash of each secret is stored. A player keeps at most
    ``MAX_TOKENS_PER_PLAYER`` tokens; issuing another evicts the oldest.
    """

    def __init__(self, db: AsyncSession, settings: Settings, hasher: SecretHasher, clock: Clock = utc_now):
        self.db = db
        self.hasher = hasher
        self.clock = clock
        self.ttl = timedelta(days=settings.refresh_token_exp_days)

    async def _insert(self, player_id: str) -> tuple[str, str]:
        secret = generate_secret()
        token = RefreshToken(
            token_id=new_id(),
            player_id=player_id,
            secret_hash=self.hasher.hash(secret),
            created_at=self.clock(),
            revoked=False,
        )
        self.db.add(token)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise NotFound("players") from exc
        await self._evict_excess(player_id)
        return token.token_id, secret

    async def _evict_excess(self, player_id: str) -> None:
        stmt = (
            select(RefreshToken.id)
            .where(RefreshToken.player_id == player_id)
            .order_by(RefreshToken.created_at.desc(), RefreshToken.id.desc())
            .offset(MAX_TOKENS_PER_PLAYER)
        )
        stale_ids = (await self.db.execute(stmt)).scalars().all()
        if stale_ids:
            await self.db.execute(
                delete(RefreshToken)
                .where(RefreshToken.id.in_(stale_ids))
                .execution_options(synchronize_session=False)
            )
            logger.debug(f"Evicted {len(stale_ids)} refresh tokens for player {player_id}")

    async def issue(self, player_id: str) -> tuple[str, str]:
        """Create a token for ``player_id`` and return ``(token_id, raw_secret)``."""
        async with transaction(self.db, "refresh token issue"):
            return await self._insert(player_id)

    async def verify(self, token_id: str, raw_secret: str) -> RefreshToken:
        """Return the stored token if ``raw_secret`` matches and it is still usable.

        Raises:
            AuthenticationFailure: unknown token or wrong secret
            TokenExpired: older than the refresh lifetime
            TokenRevoked: revoked explicitly or by a credential change
        """
        stmt = (
            select(RefreshToken)
            .where(RefreshToken.token_id == token_id)
            .execution_options(populate_existing=True)
        )
        token = (await self.db.execute(stmt)).scalars().first()
        if token is None or not self.hasher.verify(raw_secret, token.secret_hash):
            raise AuthenticationFailure(AuthnFailureReason.BAD_COOKIE_CREDENTIALS)
        if token.is_expired(self.ttl, self.clock()):
            raise TokenExpired()
        if token.revoked:
            raise TokenRevoked()
        return token

    async def rotate(
        self, token_id: str, raw_secret: str, *, verified: RefreshToken | None = None
    ) -> tuple[str, str, str]:
        """Swap a valid token for a new one in a single transaction.

        The old row is deleted by id and hash together; if a concurrent
        rotation already removed it, nothing is deleted and this call fails.
        Pass ``verified`` when the caller has just run ``verify`` on the same
        token, to skip hashing the secret a second time.

        Returns:
            ``(player_id, new_token_id, new_raw_secret)``
        """
        async with transaction(self.db, "refresh token rotation"):
            token = verified
            if token is None or token.token_id != token_id:
                token = await self.verify(token_id, raw_secret)
            player_id = token.player_id
            result = await self.db.execute(
                delete(RefreshToken)
                .where(
                    RefreshToken.token_id == token_id,
                    RefreshToken.secret_hash == token.secret_hash,
                    RefreshToken.revoked.is_(False),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.warning(f"Refresh token {token_id} was rotated concurrently")
                raise AuthenticationFailure(AuthnFailureReason.BAD_COOKIE_CREDENTIALS)
            self.db.expunge(token)

            new_token_id, new_secret = await self._insert(player_id)

        logger.info(f"Rotated refresh token for player {player_id}")
        return player_id, new_token_id, new_secret

    async def revoke(self, token_id: str) -> None:
        """Revoke one token. Unknown ids are ignored."""
        async with transaction(self.db, "refresh token revocation"):
            await self.db.execute(
                update(RefreshToken)
                .where(RefreshToken.token_id == token_id)
                .values(revoked=True)
                .execution_options(synchronize_session=False)
            )

    async def revoke_all(self, player_id: str) -> None:
        async with transaction(self.db, "refresh token revocation"):
            await self.db.execute(
                update(RefreshToken)
                .where(RefreshToken.player_id == player_id)
                .values(revoked=True)
                .execution_options(synchronize_session=False)
            )
        logger.info(f"Revoked all refresh tokens for player {player_id}")
