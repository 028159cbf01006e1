# eventflow/auth/identity.py
"""
Canonical authenticated identity model.

Built from a verified access token, so downstream code can reason about
"who is this user?" without touching raw JWTs or loading the user row.
Access tokens are stateless: the identity is exactly what the token claims.

The Identity object is INTERNAL ONLY and should not be returned directly
to clients.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Identity:
    """
    Attributes:
        user_id: Internal application user ID (``id`` claim).
        username: The user's ``userName`` at the time the token was issued.
        email: The user's email at the time the token was issued.
        raw_claims: Decoded claims, kept for audit logging only.
    """

    user_id: int
    username: str
    email: str
    raw_claims: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> Identity:
        """Raises ValueError when a required claim is missing or malformed."""
        raw_id = claims.get("id")
        if raw_id is None or isinstance(raw_id, bool):
            raise ValueError("Token missing 'id'")
        try:
            user_id = int(raw_id)
        except (TypeError, ValueError):
            raise ValueError("Token 'id' is not an integer")

        return cls(
            user_id=user_id,
            username=str(claims.get("username") or ""),
            email=str(claims.get("email") or "").strip().lower(),
            raw_claims=dict(claims),
        )

    def to_debug_dict(self) -> dict[str, Any]:
        """Safe subset for logs; excludes raw_claims."""
        return {
            "user_id": self.user_id,
            "username": self.username,
            "email": self.email,
        }
