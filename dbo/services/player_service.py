"""Account credential store: owns the player row and its credentials."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dbo.config import Settings
from dbo.database import transaction
from dbo.errors import (
    AccountLocked,
    InternalConflict,
    NoProposedChange,
    NotFound,
    ReusedCredential,
    UniquenessViolation,
)
from dbo.models.player import Player
from dbo.services.lockout_policy import failures_to_lockout
from dbo.utils.datetime_helpers import Clock, ensure_utc, utc_now
from dbo.utils.passwords import SecretHasher
from dbo.utils.validation import (
    canonicalize_email,
    canonicalize_username,
    validate_email,
    validate_password,
    validate_registration,
    validate_username,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FailedLogin:
    """Outcome of recording a failed login."""

    failed_logins: int
    locked_until: Optional[datetime]


class PlayerService:
    """Service for player accounts and their credentials."""

    def __init__(self, db: AsyncSession, settings: Settings, hasher: SecretHasher, clock: Clock = utc_now):
        self.db = db
        self.settings = settings
        self.hasher = hasher
        self.clock = clock

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    async def _fetch_one(self, *criteria) -> Player | None:
        stmt = select(Player).where(*criteria).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def get_player_by_id(self, player_id: str) -> Player | None:
        return await self._fetch_one(Player.player_id == player_id)

    async def get_player_by_username(self, username: str) -> Player | None:
        """Case-insensitive lookup by username."""
        if not username or not username.strip():
            return None
        return await self._fetch_one(Player.username_canonical == canonicalize_username(username))

    async def get_player_by_email(self, email: str) -> Player | None:
        """Case-insensitive lookup by confirmed email."""
        if not email or not email.strip():
            return None
        return await self._fetch_one(Player.email_canonical == canonicalize_email(email))

    async def find_by_credential_subject(self, subject: str) -> Player | None:
        """Resolve a login subject that may be either a username or an email.

        Usernames cannot contain ``@``, so the subject is treated as an email
        when it has one.
        """
        if "@" in (subject or ""):
            return await self.get_player_by_email(subject)
        return await self.get_player_by_username(subject)

    async def require_player(self, player_id: str) -> Player:
        player = await self.get_player_by_id(player_id)
        if player is None:
            raise NotFound("players")
        return player

    async def _taken_fields(
        self,
        *,
        username: str | None = None,
        email: str | None = None,
        exclude_player_id: str | None = None,
    ) -> tuple[bool, bool]:
        """Return ``(username_taken, email_taken)`` against other players."""

        async def exists(*criteria) -> bool:
            stmt = select(func.count()).select_from(Player).where(*criteria)
            if exclude_player_id is not None:
                stmt = stmt.where(Player.player_id != exclude_player_id)
            return (await self.db.execute(stmt)).scalar_one() > 0

        username_taken = False
        email_taken = False
        if username is not None:
            username_taken = await exists(Player.username_canonical == canonicalize_username(username))
        if email is not None:
            email_taken = await exists(Player.email_canonical == canonicalize_email(email))
        return username_taken, email_taken

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------
    async def register(self, username: str, password: str, email: str) -> Player:
        """Create an unconfirmed player.

        Raises:
            PolicyViolation: when any field breaks the format rules
            UniquenessViolation: when the username or email is already used
        """
        validate_registration(username, password, email)

        async with transaction(self.db, "player registration"):
            username_taken, email_taken = await self._taken_fields(username=username, email=email)
            if username_taken or email_taken:
                raise UniquenessViolation(username_taken, email_taken)

            now = self.clock()
            player = Player(
                username=username,
                username_canonical=canonicalize_username(username),
                email=email.strip(),
                email_canonical=canonicalize_email(email),
                password_hash=self.hasher.hash(password),
                last_passwords=[],
                confirmed=False,
                failed_logins=0,
                session_valid_after=now,
                created_at=now,
            )
            self.db.add(player)
            await self._flush_unique(username=username, email=email)

        logger.info(f"Registered player {player.player_id}")
        return player

    async def _flush_unique(self, *, username=None, email=None, exclude_player_id=None) -> None:
        # A concurrent writer can claim the value between the pre-check and the write.
        try:
            await self.db.flush()
        except IntegrityError as exc:
            await self.db.rollback()
            username_taken, email_taken = await self._taken_fields(
                username=username, email=email, exclude_player_id=exclude_player_id
            )
            if not (username_taken or email_taken):
                raise
            raise UniquenessViolation(username_taken, email_taken) from exc

    async def confirm(self, player_id: str) -> None:
        """Mark the player's email as confirmed. Confirming twice is a no-op."""
        async with transaction(self.db, "player confirmation"):
            result = await self.db.execute(
                update(Player)
                .where(Player.player_id == player_id)
                .values(confirmed=True)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFound("players")

    # ------------------------------------------------------------------
    # Login bookkeeping
    # ------------------------------------------------------------------
    async def record_failed_login(self, player_id: str) -> FailedLogin:
        """Atomically bump the failure counter and apply any lockout it earns."""
        async with transaction(self.db, "failed login bookkeeping"):
            result = await self.db.execute(
                update(Player)
                .where(Player.player_id == player_id)
                .values(failed_logins=Player.failed_logins + 1)
                .returning(Player.failed_logins)
                .execution_options(synchronize_session=False)
            )
            failed_logins = result.scalar_one_or_none()
            if failed_logins is None:
                raise NotFound("players")

            locked_until = None
            lockout = failures_to_lockout(failed_logins)
            if lockout is not None:
                locked_until = self.clock() + lockout
                await self.db.execute(
                    update(Player)
                    .where(Player.player_id == player_id)
                    .values(locked_until=locked_until)
                    .execution_options(synchronize_session=False)
                )

        if locked_until is not None:
            logger.warning(
                f"Player {player_id} locked out until {locked_until.isoformat()} "
                f"after {failed_logins} failed logins"
            )
        return FailedLogin(failed_logins=failed_logins, locked_until=locked_until)

    async def record_successful_login(self, player_id: str) -> None:
        """Reset failures, clear the lockout and stamp ``last_login``.

        The update only applies while no lockout is active, so a lockout set
        by a concurrent failure is never wiped by a stale success.
        """
        now = self.clock()
        async with transaction(self.db, "successful login bookkeeping"):
            result = await self.db.execute(
                update(Player)
                .where(Player.player_id == player_id)
                .where(or_(Player.locked_until.is_(None), Player.locked_until <= now))
                .values(failed_logins=0, locked_until=None, last_login=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                player = await self.get_player_by_id(player_id)
                if player is None:
                    raise NotFound("players")
                raise AccountLocked(ensure_utc(player.locked_until))

    async def clear_lockout(self, player_id: str) -> None:
        async with transaction(self.db, "lockout reset"):
            result = await self.db.execute(
                update(Player)
                .where(Player.player_id == player_id)
                .values(failed_logins=0, locked_until=None)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFound("players")

    # ------------------------------------------------------------------
    # Credential changes
    # ------------------------------------------------------------------
    def _bump_session(self, player: Player) -> None:
        # session_valid_after never moves backwards.
        now = self.clock()
        current = ensure_utc(player.session_valid_after)
        player.session_valid_after = now if current is None or now > current else current

    async def update_password(self, player_id: str, new_password: str) -> None:
        """Replace the password, refusing the current one and the last four.

        Raises:
            PolicyViolation: when the password breaks the format rules
            ReusedCredential: when the password was used recently
        """
        validate_password(new_password)

        async with transaction(self.db, "password update"):
            player = await self.require_player(player_id)
            history = player.password_history
            recent = [player.password_hash, *history]
            if any(self.hasher.verify(new_password, old_hash) for old_hash in recent):
                raise ReusedCredential()

            history.push(player.password_hash)
            player.last_passwords = history.to_list()
            player.password_hash = self.hasher.hash(new_password)
            self._bump_session(player)

        logger.info(f"Updated password for player {player_id}")

    async def update_username(self, player_id: str, new_username: str) -> Player:
        validate_username(new_username)

        async with transaction(self.db, "username update"):
            player = await self.require_player(player_id)
            username_taken, _ = await self._taken_fields(
                username=new_username, exclude_player_id=player_id
            )
            if username_taken:
                raise UniquenessViolation(username_taken=True, email_taken=False)

            player.username = new_username
            player.username_canonical = canonicalize_username(new_username)
            self._bump_session(player)
            await self._flush_unique(username=new_username, exclude_player_id=player_id)

        logger.info(f"Updated username for player {player_id}")
        return player

    async def update_proposed_email(self, player_id: str, new_email: str) -> Player:
        """Record ``new_email`` as pending until it is confirmed."""
        validate_email(new_email)

        async with transaction(self.db, "proposed email update"):
            player = await self.require_player(player_id)
            if canonicalize_email(new_email) == player.email_canonical:
                raise InternalConflict("email_unchanged")
            _, email_taken = await self._taken_fields(email=new_email, exclude_player_id=player_id)
            if email_taken:
                raise UniquenessViolation(username_taken=False, email_taken=True)

            player.proposed_email = new_email.strip()
            self._bump_session(player)

        logger.info(f"Proposed new email for player {player_id}")
        return player

    async def confirm_proposed_email(self, player_id: str) -> Player:
        """Promote the pending email to the account email."""
        async with transaction(self.db, "proposed email confirmation"):
            player = await self.require_player(player_id)
            if not player.proposed_email:
                raise NoProposedChange()

            new_email = player.proposed_email
            _, email_taken = await self._taken_fields(email=new_email, exclude_player_id=player_id)
            if email_taken:
                raise UniquenessViolation(username_taken=False, email_taken=True)

            player.email = new_email
            player.email_canonical = canonicalize_email(new_email)
            player.proposed_email = None
            self._bump_session(player)
            await self._flush_unique(email=new_email, exclude_player_id=player_id)

        logger.info(f"Confirmed new email for player {player_id}")
        return player

    async def clear_proposed_email(self, player_id: str) -> None:
        """Drop any pending email change and invalidate existing sessions."""
        async with transaction(self.db, "proposed email reset"):
            player = await self.require_player(player_id)
            player.proposed_email = None
            self._bump_session(player)

    async def delete_player(self, player_id: str) -> None:
        """Delete the player; its tokens go with it via ON DELETE CASCADE."""
        async with transaction(self.db, "player deletion"):
            result = await self.db.execute(
                delete(Player)
                .where(Player.player_id == player_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFound("players")

        logger.info(f"Deleted player {player_id}")
