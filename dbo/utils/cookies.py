"""HTTP cookie helpers for the refresh token."""
from fastapi import Response

from dbo.config import Settings


def set_refresh_cookie(response: Response, value: str, settings: Settings) -> None:
    """Set the refresh token cookie.

    The cookie is HTTP-only, SameSite=strict and scoped to the refresh route
    so the browser only sends it there.

    Args:
        response: FastAPI Response object
        value: Cookie value in ``"{token_id}:{secret}"`` form
        settings: Application settings
    """
    max_age = settings.refresh_token_exp_days * 24 * 60 * 60
    # Secure flag: only disable for local development
    secure_value = settings.environment != "development"

    response.set_cookie(
        key=settings.refresh_token_cookie_name,
        value=value,
        httponly=True,
        secure=secure_value,
        samesite="strict",
        max_age=max_age,
        expires=max_age,
        path=settings.refresh_token_cookie_path,
    )


def clear_refresh_cookie(response: Response, settings: Settings) -> None:
    """Remove the refresh token cookie."""
    response.delete_cookie(
        key=settings.refresh_token_cookie_name,
        path=settings.refresh_token_cookie_path,
        secure=settings.environment != "development",
        httponly=True,
        samesite="strict",
    )
