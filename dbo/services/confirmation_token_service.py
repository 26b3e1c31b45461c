"""Single-use email confirmation tokens, one live token per player."""
from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dbo.config import Settings
from dbo.database import transaction, upsert_statement
from dbo.errors import AlreadyConfirmed, NotFound, RelationalConflict, TokenExpired
from dbo.models.base import new_id
from dbo.models.confirmation_token import ConfirmationToken
from dbo.models.player import Player
from dbo.utils.datetime_helpers import Clock, utc_now

logger = logging.getLogger(__name__)


class ConfirmationTokenService:
    """Issue, consume and reject email confirmation tokens.

    Issuing a token replaces any earlier one for the same player, so only
    the most recent email link works.
    """

    def __init__(self, db: AsyncSession, settings: Settings, clock: Clock = utc_now):
        self.db = db
        self.clock = clock
        self.ttl = timedelta(minutes=settings.confirmation_token_exp_minutes)

    async def issue(self, player_id: str) -> str:
        token_id = new_id()
        now = self.clock()
        stmt = upsert_statement(
            self.db,
            ConfirmationToken,
            {"token_id": token_id, "player_id": player_id, "created_at": now},
            index_elements=["player_id"],
            update_data={"token_id": token_id, "created_at": now},
        )
        async with transaction(self.db, "confirmation token issue"):
            try:
                await self.db.execute(stmt)
            except IntegrityError as exc:
                raise NotFound("players") from exc
        return token_id

    async def get_by_player(self, player_id: str) -> ConfirmationToken | None:
        stmt = (
            select(ConfirmationToken)
            .where(ConfirmationToken.player_id == player_id)
            .execution_options(populate_existing=True)
        )
        return (await self.db.execute(stmt)).scalars().first()

    async def _load(self, token_id: str) -> ConfirmationToken | None:
        stmt = (
            select(ConfirmationToken)
            .where(ConfirmationToken.token_id == token_id)
            .execution_options(populate_existing=True)
        )
        return (await self.db.execute(stmt)).scalars().first()

    async def _load_player(self, player_id: str) -> Player | None:
        stmt = select(Player).where(Player.player_id == player_id).execution_options(populate_existing=True)
        return (await self.db.execute(stmt)).scalars().first()

    async def _checked(self, player_id: str, token_id: str) -> tuple[ConfirmationToken, Player]:
        token = await self._load(token_id)
        if token is None:
            raise NotFound("confirmation_tokens")
        if token.player_id != player_id:
            raise RelationalConflict("confirmation_token_owner_mismatch")
        player = await self._load_player(player_id)
        if player is None:
            raise NotFound("players")
        if token.is_expired(self.ttl, self.clock()):
            raise TokenExpired()
        return token, player

    async def _delete(self, token: ConfirmationToken) -> None:
        await self.db.execute(
            delete(ConfirmationToken)
            .where(ConfirmationToken.token_id == token.token_id)
            .execution_options(synchronize_session=False)
        )
        self.db.expunge(token)

    async def consume(self, player_id: str, token_id: str) -> None:
        """Confirm the player's registration and delete the token.

        Raises:
            NotFound: token or player missing
            RelationalConflict: token belongs to another player
            TokenExpired: token older than the confirmation window
            AlreadyConfirmed: player was confirmed already
        """
        async with transaction(self.db, "confirmation token consume"):
            token, player = await self._checked(player_id, token_id)
            if player.confirmed:
                raise AlreadyConfirmed()
            await self._delete(token)
            player.confirmed = True

        logger.info(f"Player {player_id} confirmed their email")

    async def verify(self, player_id: str, token_id: str) -> ConfirmationToken:
        """Check a token without using it up."""
        token, _ = await self._checked(player_id, token_id)
        return token

    async def consume_for_email_change(self, player_id: str, token_id: str) -> None:
        """Delete a valid token issued for a pending email change."""
        async with transaction(self.db, "email change token consume"):
            token, _ = await self._checked(player_id, token_id)
            await self._delete(token)

    async def discard(self, player_id: str) -> None:
        """Remove any pending token for the player."""
        async with transaction(self.db, "confirmation token discard"):
            await self.db.execute(
                delete(ConfirmationToken)
                .where(ConfirmationToken.player_id == player_id)
                .execution_options(synchronize_session=False)
            )

    async def reject(self, player_id: str, token_id: str) -> None:
        """Delete an unconfirmed registration along with its token.

        Rejecting a registration that is already gone succeeds without
        doing anything.
        """
        async with transaction(self.db, "confirmation token reject"):
            token = await self._load(token_id)
            player = await self._load_player(player_id)
            if player is None:
                if token is not None and token.player_id == player_id:
                    await self._delete(token)
                logger.info(f"Reject for missing player {player_id} treated as done")
                return
            if token is None:
                raise NotFound("confirmation_tokens")
            if token.player_id != player_id:
                raise RelationalConflict("confirmation_token_owner_mismatch")
            if player.confirmed:
                raise AlreadyConfirmed()

            await self._delete(token)
            await self.db.execute(
                delete(Player)
                .where(Player.player_id == player_id)
                .execution_options(synchronize_session=False)
            )
            self.db.expunge(player)

        logger.info(f"Rejected registration of player {player_id}")
