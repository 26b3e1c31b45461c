"""Undo tokens for reverting recent password and email changes."""
from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dbo.config import Settings
from dbo.database import transaction, upsert_statement
from dbo.errors import NotFound, RelationalConflict, TokenExpired
from dbo.models.base import UndoFunction, new_id
from dbo.models.undo_token import UndoToken
from dbo.utils.datetime_helpers import Clock, utc_now

logger = logging.getLogger(__name__)


class UndoTokenService:
    def __init__(self, db: AsyncSession, settings: Settings, clock: Clock = utc_now):
        self.db = db
        self.clock = clock
        self.ttl = timedelta(hours=settings.undo_token_exp_hours)

    async def issue(self, player_id: str, function: UndoFunction) -> str:
        """Create the undo token for ``function``, replacing any earlier one."""
        token_id = new_id()
        now = self.clock()
        stmt = upsert_statement(
            self.db,
            UndoToken,
            {
                "token_id": token_id,
                "player_id": player_id,
                "function": function.encode(),
                "created_at": now,
            },
            index_elements=["player_id", "function"],
            update_data={"token_id": token_id, "created_at": now},
        )
        async with transaction(self.db, "undo token issue"):
            try:
                await self.db.execute(stmt)
            except IntegrityError as exc:
                raise NotFound("players") from exc
        return token_id

    async def verify(self, player_id: str, token_id: str, function: UndoFunction) -> UndoToken:
        """Check that ``token_id`` can undo ``function`` for ``player_id``.

        Raises:
            NotFound: no such token
            RelationalConflict: token belongs to another player or function
            TokenExpired: token older than the undo window
        """
        stmt = (
            select(UndoToken)
            .where(UndoToken.token_id == token_id)
            .execution_options(populate_existing=True)
        )
        token = (await self.db.execute(stmt)).scalars().first()
        if token is None:
            raise NotFound("undo_tokens")
        if token.player_id != player_id or token.function != function.encode():
            raise RelationalConflict("undo_token_mismatch")
        if token.is_expired(self.ttl, self.clock()):
            raise TokenExpired()
        return token

    async def consume_by_function(self, player_id: str, function: UndoFunction) -> None:
        """Delete every undo token the player holds for ``function``."""
        async with transaction(self.db, "undo token consume"):
            await self.db.execute(
                delete(UndoToken)
                .where(UndoToken.player_id == player_id, UndoToken.function == function.encode())
                .execution_options(synchronize_session=False)
            )
        logger.debug(f"Consumed {function.value} undo tokens for player {player_id}")
