"""Tests for the account credential store."""
import pytest
from sqlalchemy import select

from dbo.errors import (
    AccountLocked,
    AuthenticationFailure,
    AuthnFailureReason,
    InternalConflict,
    NoProposedChange,
    NotFound,
    PolicyViolation,
    ReusedCredential,
    UniquenessViolation,
)
from dbo.models.player import PASSWORD_HISTORY_SIZE, PasswordHistory
from dbo.models.refresh_token import RefreshToken

TEST_PASSWORD = "Secret#123"


class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_creates_unconfirmed_player(self, services, hasher, clock):
        player = await services.players.register("Dealer_One", TEST_PASSWORD, "Dealer@Example.com")

        assert player.confirmed is False
        assert player.username_canonical == "dealer_one"
        assert player.email_canonical == "dealer@example.com"
        assert player.failed_logins == 0
        assert player.last_passwords == []
        assert player.password_hash != TEST_PASSWORD
        assert hasher.verify(TEST_PASSWORD, player.password_hash)

    @pytest.mark.asyncio
    async def test_username_is_case_insensitively_unique(self, services, player_factory):
        await player_factory(username="dealer_one", email="first@example.com")

        with pytest.raises(UniquenessViolation) as exc_info:
            await services.players.register("DEALER_ONE", TEST_PASSWORD, "second@example.com")

        assert exc_info.value.username_taken is True
        assert exc_info.value.email_taken is False

    @pytest.mark.asyncio
    async def test_email_is_case_insensitively_unique(self, services, player_factory):
        await player_factory(username="dealer_one", email="first@example.com")

        with pytest.raises(UniquenessViolation) as exc_info:
            await services.players.register("dealer_two", TEST_PASSWORD, "FIRST@example.com")

        assert exc_info.value.username_taken is False
        assert exc_info.value.email_taken is True

    @pytest.mark.asyncio
    async def test_both_fields_reported(self, services, player_factory):
        await player_factory(username="dealer_one", email="first@example.com")

        with pytest.raises(UniquenessViolation) as exc_info:
            await services.players.register("Dealer_One", TEST_PASSWORD, "First@Example.com")

        assert exc_info.value.username_taken and exc_info.value.email_taken

    @pytest.mark.asyncio
    async def test_policy_violation_before_uniqueness(self, services):
        with pytest.raises(PolicyViolation) as exc_info:
            await services.players.register("dealer_one", "password", "dealer@example.com")
        assert list(exc_info.value.problems) == ["password"]

    @pytest.mark.asyncio
    async def test_lookup_by_username_or_email(self, services, player_factory):
        player = await player_factory(username="dealer_one", email="dealer@example.com")

        by_name = await services.players.find_by_credential_subject("DEALER_one")
        by_email = await services.players.find_by_credential_subject("Dealer@Example.COM")

        assert by_name.player_id == player.player_id
        assert by_email.player_id == player.player_id
        assert await services.players.find_by_credential_subject("nobody_here") is None

    @pytest.mark.asyncio
    async def test_confirm_is_idempotent(self, services, player_factory):
        player = await player_factory(confirmed=False)

        await services.players.confirm(player.player_id)
        await services.players.confirm(player.player_id)

        refreshed = await services.players.get_player_by_id(player.player_id)
        assert refreshed.confirmed is True

    @pytest.mark.asyncio
    async def test_confirm_missing_player(self, services):
        with pytest.raises(NotFound):
            await services.players.confirm("missing-player")


class TestFailedLogins:
    @pytest.mark.asyncio
    async def test_failures_escalate_to_lockout(self, services, player_factory, clock):
        player = await player_factory()

        for expected in range(1, 5):
            failed = await services.players.record_failed_login(player.player_id)
            assert failed.failed_logins == expected
            assert failed.locked_until is None

        fifth = await services.players.record_failed_login(player.player_id)
        assert fifth.failed_logins == 5
        assert (fifth.locked_until - clock()).total_seconds() == 15 * 60

        sixth = await services.players.record_failed_login(player.player_id)
        assert (sixth.locked_until - clock()).total_seconds() == 30 * 60

    @pytest.mark.asyncio
    async def test_unknown_player(self, services):
        with pytest.raises(NotFound):
            await services.players.record_failed_login("missing-player")

    @pytest.mark.asyncio
    async def test_success_resets_counter(self, services, player_factory, clock):
        player = await player_factory()
        for _ in range(3):
            await services.players.record_failed_login(player.player_id)

        await services.players.record_successful_login(player.player_id)

        refreshed = await services.players.get_player_by_id(player.player_id)
        assert refreshed.failed_logins == 0
        assert refreshed.locked_until is None
        assert refreshed.lockout_end(clock()) is None
        assert refreshed.last_login is not None

    @pytest.mark.asyncio
    async def test_success_does_not_clear_active_lockout(self, services, player_factory, clock):
        """A success recorded after a concurrent failure locked the account must not unlock it."""
        player = await player_factory()
        for _ in range(5):
            failed = await services.players.record_failed_login(player.player_id)

        with pytest.raises(AccountLocked) as exc_info:
            await services.players.record_successful_login(player.player_id)
        assert exc_info.value.until == failed.locked_until

        refreshed = await services.players.get_player_by_id(player.player_id)
        assert refreshed.failed_logins == 5
        assert refreshed.lockout_end(clock()) == failed.locked_until

    @pytest.mark.asyncio
    async def test_success_after_lockout_expires(self, services, player_factory, clock):
        player = await player_factory()
        for _ in range(5):
            await services.players.record_failed_login(player.player_id)

        clock.advance(minutes=15, seconds=1)
        await services.players.record_successful_login(player.player_id)

        refreshed = await services.players.get_player_by_id(player.player_id)
        assert refreshed.failed_logins == 0
        assert refreshed.locked_until is None


class TestPasswordHistory:
    def test_ring_keeps_newest_first(self):
        history = PasswordHistory()
        for h in ["h1", "h2", "h3", "h4", "h5"]:
            history.push(h)

        assert len(history) == PASSWORD_HISTORY_SIZE
        assert history.to_list() == ["h5", "h4", "h3", "h2"]

    def test_ring_drops_empty_entries(self):
        assert PasswordHistory(["h1", "", None, "h2"]).to_list() == ["h1", "h2"]

    @pytest.mark.asyncio
    async def test_reuse_window(self, services, player_factory):
        """Passwords P1..P6 in turn: P2..P6 are refused, P1 has aged out."""
        passwords = [f"Secret#{n}x" for n in range(1, 7)]
        player = await player_factory(password=passwords[0])

        for password in passwords[1:]:
            await services.players.update_password(player.player_id, password)

        for password in passwords[1:]:
            with pytest.raises(ReusedCredential):
                await services.players.update_password(player.player_id, password)

        await services.players.update_password(player.player_id, passwords[0])

        refreshed = await services.players.get_player_by_id(player.player_id)
        assert len(refreshed.last_passwords) == PASSWORD_HISTORY_SIZE

    @pytest.mark.asyncio
    async def test_current_password_refused(self, services, player_factory):
        player = await player_factory()
        with pytest.raises(ReusedCredential):
            await services.players.update_password(player.player_id, TEST_PASSWORD)

    @pytest.mark.asyncio
    async def test_password_change_moves_session_marker(self, services, player_factory, clock):
        player = await player_factory()
        before = player.session_valid_after

        clock.advance(seconds=30)
        await services.players.update_password(player.player_id, "Changed#456")

        refreshed = await services.players.get_player_by_id(player.player_id)
        assert refreshed.session_valid_after > before

    @pytest.mark.asyncio
    async def test_weak_password_refused(self, services, player_factory):
        player = await player_factory()
        with pytest.raises(PolicyViolation):
            await services.players.update_password(player.player_id, "weak")


class TestProfileChanges:
    @pytest.mark.asyncio
    async def test_update_username(self, services, player_factory):
        player = await player_factory()
        updated = await services.players.update_username(player.player_id, "New_Name")

        assert updated.username == "New_Name"
        assert (await services.players.get_player_by_username("new_name")).player_id == player.player_id

    @pytest.mark.asyncio
    async def test_update_username_taken(self, services, player_factory):
        await player_factory(username="taken_name")
        player = await player_factory()

        with pytest.raises(UniquenessViolation):
            await services.players.update_username(player.player_id, "TAKEN_name")

    @pytest.mark.asyncio
    async def test_proposed_email_lifecycle(self, services, player_factory):
        player = await player_factory(email="old@example.com")

        await services.players.update_proposed_email(player.player_id, "new@example.com")
        confirmed = await services.players.confirm_proposed_email(player.player_id)

        assert confirmed.email == "new@example.com"
        assert confirmed.proposed_email is None
        assert await services.players.get_player_by_email("old@example.com") is None

    @pytest.mark.asyncio
    async def test_proposed_email_moves_session_marker(self, services, player_factory, clock):
        player = await player_factory(email="old@example.com")
        old_access_token = services.access_tokens.issue(player.player_id)
        before = player.session_valid_after

        clock.advance(seconds=10)
        await services.players.update_proposed_email(player.player_id, "new@example.com")

        refreshed = await services.players.get_player_by_id(player.player_id)
        assert refreshed.session_valid_after > before
        with pytest.raises(AuthenticationFailure) as exc_info:
            await services.auth.authenticate(old_access_token)
        assert exc_info.value.reason == AuthnFailureReason.PREMATURE_ACCESS_TOKEN

    @pytest.mark.asyncio
    async def test_proposed_email_must_differ(self, services, player_factory):
        player = await player_factory(email="same@example.com")
        with pytest.raises(InternalConflict):
            await services.players.update_proposed_email(player.player_id, "SAME@example.com")

    @pytest.mark.asyncio
    async def test_confirm_without_proposal(self, services, player_factory):
        player = await player_factory()
        with pytest.raises(NoProposedChange):
            await services.players.confirm_proposed_email(player.player_id)

    @pytest.mark.asyncio
    async def test_delete_cascades_to_tokens(self, services, player_factory, db_session):
        player = await player_factory()
        await services.refresh_tokens.issue(player.player_id)

        await services.players.delete_player(player.player_id)

        assert await services.players.get_player_by_id(player.player_id) is None
        rows = (await db_session.execute(
            select(RefreshToken).where(RefreshToken.player_id == player.player_id)
        )).scalars().all()
        assert rows == []
