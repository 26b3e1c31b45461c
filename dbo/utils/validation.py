"""Format rules for usernames, passwords and email addresses."""
from __future__ import annotations

import string

from dbo.errors import PolicyViolation

USERNAME_MIN_LENGTH = 5
USERNAME_MAX_LENGTH = 16
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 32
PASSWORD_SYMBOLS = "!@#$%^&*+=?"

_USERNAME_CHARS = set(string.ascii_letters + string.digits + "_")
_EMAIL_PREFIX_CHARS = set(string.ascii_letters + string.digits + "._+-")
_EMAIL_DOMAIN_CHARS = set(string.ascii_letters + string.digits + ".-")


def canonicalize_username(username: str) -> str:
    """Lowercase form used for case-insensitive uniqueness and lookup."""
    return username.strip().lower()


def canonicalize_email(email: str) -> str:
    return email.strip().lower()


def username_problems(username: str) -> list[str]:
    problems = []
    if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
        problems.append(
            f"Username must be between {USERNAME_MIN_LENGTH} and {USERNAME_MAX_LENGTH} characters."
        )
    if any(ch not in _USERNAME_CHARS for ch in username):
        problems.append("Username may only contain letters, digits and underscores.")
    if username.startswith("_"):
        problems.append("Username must not start with an underscore.")
    if "__" in username:
        problems.append("Username must not contain consecutive underscores.")
    return problems


def password_problems(password: str) -> list[str]:
    problems = []
    if not PASSWORD_MIN_LENGTH <= len(password) <= PASSWORD_MAX_LENGTH:
        problems.append(
            f"Password must be between {PASSWORD_MIN_LENGTH} and {PASSWORD_MAX_LENGTH} characters."
        )
    if not any(ch in string.ascii_lowercase for ch in password):
        problems.append("Password must include a lowercase letter.")
    if not any(ch in string.ascii_uppercase for ch in password):
        problems.append("Password must include an uppercase letter.")
    if not any(ch in string.digits for ch in password):
        problems.append("Password must include a number.")
    if not any(ch in PASSWORD_SYMBOLS for ch in password):
        problems.append(f"Password must include one of {PASSWORD_SYMBOLS}")
    allowed = set(string.ascii_letters + string.digits + PASSWORD_SYMBOLS)
    if any(ch not in allowed for ch in password):
        problems.append(f"Password may only contain letters, digits and {PASSWORD_SYMBOLS}")
    return problems


def email_problems(email: str) -> list[str]:
    """Check an email address.

    The local part allows letters, digits and ``._+-`` with no leading,
    trailing or doubled dots. The domain needs at least two labels, labels
    may not start or end with a hyphen, and the top-level label is at least
    two characters.
    """
    if email.count("@") != 1:
        return ["Email must contain a single @ separating the prefix and the domain."]

    problems = []
    prefix, domain = email.split("@")

    if not prefix:
        problems.append("Email prefix is empty.")
    else:
        if any(ch not in _EMAIL_PREFIX_CHARS for ch in prefix):
            problems.append("Email prefix may only contain letters, numbers and . _ + -")
        if prefix.startswith(".") or prefix.endswith("."):
            problems.append("Email prefix cannot begin or end with a dot.")
        if ".." in prefix:
            problems.append("Email prefix cannot contain consecutive dots.")

    if not domain:
        problems.append("Email domain is empty.")
        return problems

    if any(ch not in _EMAIL_DOMAIN_CHARS for ch in domain):
        problems.append("Email domain may only contain letters, numbers, dots and hyphens.")
    labels = domain.split(".")
    if len(labels) < 2:
        problems.append("Email domain needs a subdomain and a top level domain.")
    if any(not label for label in labels):
        problems.append("Email domain may not contain consecutive dots.")
    if any(label.startswith("-") or label.endswith("-") for label in labels):
        problems.append("Email domain levels cannot begin or end with a hyphen.")
    if len(labels[-1]) < 2:
        problems.append("Email top level domain must be at least two characters.")

    return problems


def _raise_if_any(problems: dict[str, list[str]]) -> None:
    problems = {field: msgs for field, msgs in problems.items() if msgs}
    if problems:
        raise PolicyViolation(problems)


def validate_username(username: str) -> None:
    _raise_if_any({"username": username_problems(username)})


def validate_password(password: str) -> None:
    _raise_if_any({"password": password_problems(password)})


def validate_email(email: str) -> None:
    _raise_if_any({"email": email_problems(email)})


def validate_registration(username: str, password: str, email: str) -> None:
    """Raise ``PolicyViolation`` listing every problem across all three fields."""
    _raise_if_any({
        "username": username_problems(username),
        "password": password_problems(password),
        "email": email_problems(email),
    })
