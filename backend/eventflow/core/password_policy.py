"""
Password rules applied when an account is created or a password is reset.

Existing hashes are never re-checked at login, so tightening the policy only
affects the next password a user chooses.
"""
from __future__ import annotations

from typing import Callable, List, Optional, Tuple

from eventflow.core.config import settings
from eventflow.core.errors import WeakPassword

# Lower-cased; compared against the whole password.
DENYLIST = frozenset(
    {
        "password",
        "password1",
        "password123",
        "passw0rd",
        "123456",
        "12345678",
        "123456789",
        "111111",
        "qwerty",
        "qwerty123",
        "abc123",
        "letmein",
        "welcome",
        "welcome1",
        "iloveyou",
        "admin",
        "eventflow",
        "eventflow1",
        "events123",
        "rsvp1234",
        "party2024",
        "letsparty",
    }
)

# Identifiers shorter than this are too likely to appear by accident.
_MIN_IDENTIFIER_LENGTH = 3

Rule = Callable[[str, str, str], bool]


def _identifier(value: Optional[str]) -> str:
    value = (value or "").strip().lower()
    return value if len(value) >= _MIN_IDENTIFIER_LENGTH else ""


def _too_short(pw: str, local_part: str, username: str) -> bool:
    return len(pw) < max(int(settings.PASSWORD_MIN_LENGTH or 0), 1)


def _contains_email(pw: str, local_part: str, username: str) -> bool:
    return bool(local_part) and local_part in pw.lower()


def _contains_username(pw: str, local_part: str, username: str) -> bool:
    return bool(username) and username in pw.lower()


def _denylisted(pw: str, local_part: str, username: str) -> bool:
    return pw.lower() in DENYLIST


# Evaluated in order; violation codes are reported in the same order.
RULES: Tuple[Tuple[str, Rule], ...] = (
    ("min_length", _too_short),
    ("contains_email", _contains_email),
    ("contains_username", _contains_username),
    ("denylist_common", _denylisted),
)


def evaluate_password(
    password: str,
    *,
    email: Optional[str] = None,
    username: Optional[str] = None,
) -> List[str]:
    """Return the violation codes for ``password``; an empty list means it passes."""
    pw = password or ""
    local_part = _identifier((email or "").split("@")[0])
    user = _identifier(username)
    return [code for code, broken in RULES if broken(pw, local_part, user)]


def ensure_strong_password(password: str, *, email: Optional[str] = None, username: Optional[str] = None) -> None:
    violations = evaluate_password(password, email=email, username=username)
    if violations:
        raise WeakPassword(details={"violations": violations})
