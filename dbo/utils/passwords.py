"""Password and refresh-secret hashing using argon2id."""
from __future__ import annotations

import logging
import secrets

from argon2 import PasswordHasher, Type
from argon2.exceptions import HashingError, InvalidHash, VerificationError, VerifyMismatchError

from dbo.config import Settings
from dbo.errors import AdapterFault

logger = logging.getLogger(__name__)

SECRET_BYTES = 32


class SecretHasher:
    """Salted, memory-hard hashing of passwords and refresh secrets.

    Each ``hash`` call draws a fresh salt, so hashing the same secret twice
    yields different strings that both verify.
    """

    def __init__(self, settings: Settings):
        self._hasher = PasswordHasher(
            time_cost=settings.argon2_time_cost,
            memory_cost=settings.argon2_memory_cost_kib,
            parallelism=settings.argon2_parallelism,
            type=Type.ID,
        )

    def hash(self, secret: str) -> str:
        try:
            return self._hasher.hash(secret)
        except HashingError as exc:
            logger.error("argon2 hashing failed", exc_info=True)
            raise AdapterFault("hashing_failed") from exc

    def verify(self, secret: str, secret_hash: str) -> bool:
        """Return True when ``secret`` matches ``secret_hash``.

        A malformed stored hash raises ``AdapterFault`` rather than reporting
        a mismatch.
        """
        try:
            return self._hasher.verify(secret_hash, secret)
        except VerifyMismatchError:
            return False
        except (InvalidHash, VerificationError) as exc:
            logger.error("argon2 verification failed on stored hash", exc_info=True)
            raise AdapterFault("hash_verification_failed") from exc


def generate_secret() -> str:
    """Return a URL-safe random secret (never contains ``:``)."""
    return secrets.token_urlsafe(SECRET_BYTES)
