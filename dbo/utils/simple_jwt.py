"""Thin wrapper over PyJWT so callers import one module for tokens and errors."""
from __future__ import annotations

from typing import Any, Iterable

import jwt
from jwt import ExpiredSignatureError, InvalidTokenError

__all__ = ["encode_jwt", "decode_jwt", "ExpiredSignatureError", "InvalidTokenError"]


def encode_jwt(payload: dict[str, Any], secret: str, *, algorithm: str) -> str:
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_jwt(
    token: str,
    secret: str,
    *,
    algorithms: Iterable[str],
    require: Iterable[str] = (),
    verify_exp: bool = True,
) -> dict[str, Any]:
    """Verify the signature of ``token`` and return its claims.

    ``algorithms`` is the closed list of accepted algorithms; a token whose
    header names anything else (including ``none``) raises
    ``InvalidTokenError``.
    """
    return jwt.decode(
        token,
        secret,
        algorithms=list(algorithms),
        options={
            "require": list(require),
            "verify_exp": verify_exp,
            "verify_iat": False,
        },
    )
