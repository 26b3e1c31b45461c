"""Tests for undo tokens."""
import pytest
from sqlalchemy import func, select

from dbo.errors import NotFound, RelationalConflict, TokenExpired
from dbo.models.base import UndoFunction
from dbo.models.undo_token import UndoToken


class TestUndoTokens:
    @pytest.mark.asyncio
    async def test_one_token_per_function(self, services, player_factory, db_session):
        player = await player_factory()

        first = await services.undo_tokens.issue(player.player_id, UndoFunction.PASSWORD)
        second = await services.undo_tokens.issue(player.player_id, UndoFunction.PASSWORD)
        email = await services.undo_tokens.issue(player.player_id, UndoFunction.EMAIL)

        count = (await db_session.execute(
            select(func.count()).select_from(UndoToken).where(UndoToken.player_id == player.player_id)
        )).scalar_one()
        assert count == 2

        with pytest.raises(NotFound):
            await services.undo_tokens.verify(player.player_id, first, UndoFunction.PASSWORD)
        await services.undo_tokens.verify(player.player_id, second, UndoFunction.PASSWORD)
        await services.undo_tokens.verify(player.player_id, email, UndoFunction.EMAIL)

    @pytest.mark.asyncio
    async def test_function_must_match(self, services, player_factory):
        player = await player_factory()
        token_id = await services.undo_tokens.issue(player.player_id, UndoFunction.EMAIL)

        with pytest.raises(RelationalConflict):
            await services.undo_tokens.verify(player.player_id, token_id, UndoFunction.PASSWORD)

    @pytest.mark.asyncio
    async def test_owner_must_match(self, services, player_factory):
        owner = await player_factory()
        other = await player_factory()
        token_id = await services.undo_tokens.issue(owner.player_id, UndoFunction.PASSWORD)

        with pytest.raises(RelationalConflict):
            await services.undo_tokens.verify(other.player_id, token_id, UndoFunction.PASSWORD)

    @pytest.mark.asyncio
    async def test_expires_after_a_day(self, services, player_factory, clock):
        player = await player_factory()
        token_id = await services.undo_tokens.issue(player.player_id, UndoFunction.PASSWORD)

        clock.advance(hours=24)
        await services.undo_tokens.verify(player.player_id, token_id, UndoFunction.PASSWORD)

        clock.advance(seconds=1)
        with pytest.raises(TokenExpired):
            await services.undo_tokens.verify(player.player_id, token_id, UndoFunction.PASSWORD)

    @pytest.mark.asyncio
    async def test_consume_by_function(self, services, player_factory):
        player = await player_factory()
        password_token = await services.undo_tokens.issue(player.player_id, UndoFunction.PASSWORD)
        email_token = await services.undo_tokens.issue(player.player_id, UndoFunction.EMAIL)

        await services.undo_tokens.consume_by_function(player.player_id, UndoFunction.PASSWORD)

        with pytest.raises(NotFound):
            await services.undo_tokens.verify(player.player_id, password_token, UndoFunction.PASSWORD)
        await services.undo_tokens.verify(player.player_id, email_token, UndoFunction.EMAIL)


def test_stored_encodings_are_stable():
    assert UndoFunction.PASSWORD.encode() == "password"
    assert UndoFunction.EMAIL.encode() == "email"
