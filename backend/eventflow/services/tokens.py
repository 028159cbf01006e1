from __future__ import annotations

import logging

from fastapi import Request, Response
from sqlalchemy.orm import Session

from eventflow.auth.identity import Identity
from eventflow.core.config import settings
from eventflow.core.errors import InvalidToken, MissingToken, Unauthenticated
from eventflow.core.security import (
    create_access_token,
    create_refresh_token,
    hash_refresh_token,
    verify_token_purpose,
)
from eventflow.models.user import User

logger = logging.getLogger(__name__)


class TokenService:
    """
    Access tokens are stateless. Refresh tokens are stored only as an HMAC on the
    user row; writing a new one at login invalidates the previous session.
    """

    def __init__(self, db: Session | None = None):
        self.db = db

    # -----------------------------
    # Issue / verify
    # -----------------------------
    def issue_access_token(self, user: User) -> str:
        return create_access_token(user_id=user.id, username=user.user_name, email=user.email)

    def issue_refresh_token(self, user: User) -> str:
        return create_refresh_token(user_id=user.id)

    def verify_access(self, token: str | None) -> Identity:
        if not token or not token.strip():
            raise MissingToken()
        try:
            payload = verify_token_purpose(token.strip(), expected_purpose="access")
            return Identity.from_claims(payload)
        except ValueError:
            raise InvalidToken()

    # -----------------------------
    # Session lifecycle
    # -----------------------------
    def start_session(self, user: User) -> tuple[str, str]:
        """
        Issue an access/refresh pair and persist the refresh hash (overwrites any prior session).
        """
        access_token = self.issue_access_token(user)
        refresh_token = self.issue_refresh_token(user)

        user.refresh_token_hash = hash_refresh_token(refresh_token)
        self.db.add(user)
        self.db.commit()

        logger.info("Session started for user id=%s", user.id)
        return access_token, refresh_token

    def rotate_refresh(self, raw_token: str | None) -> str:
        """
        Exchange a refresh token for a fresh access token.
        The refresh token itself is left as is.
        """
        if not raw_token:
            raise MissingToken("Refresh token required")

        user = self._find_by_refresh_hash(raw_token)
        if not user:
            raise Unauthenticated()

        try:
            payload = verify_token_purpose(raw_token, expected_purpose="refresh")
        except ValueError:
            raise InvalidToken()

        if payload.get("id") != user.id:
            logger.warning("Refresh token subject mismatch for user id=%s", user.id)
            raise InvalidToken()

        return self.issue_access_token(user)

    def end_session(self, raw_token: str | None) -> None:
        if not raw_token:
            return
        user = self._find_by_refresh_hash(raw_token)
        if not user:
            return
        user.refresh_token_hash = None
        self.db.add(user)
        self.db.commit()
        logger.info("Session ended for user id=%s", user.id)

    def _find_by_refresh_hash(self, raw_token: str) -> User | None:
        token_hash = hash_refresh_token(raw_token)
        return self.db.query(User).filter(User.refresh_token_hash == token_hash).first()


# -----------------------------
# Cookie helpers
# -----------------------------
def refresh_cookie_max_age_seconds() -> int:
    days = int(getattr(settings, "REFRESH_TOKEN_EXPIRE_DAYS", 7))
    return days * 24 * 3600


def cookie_name() -> str:
    return str(getattr(settings, "REFRESH_COOKIE_NAME", "refreshToken")).strip() or "refreshToken"


def cookie_path() -> str:
    return str(getattr(settings, "REFRESH_COOKIE_PATH", "/")).strip() or "/"


def cookie_secure() -> bool:
    # Prod => HTTPS => Secure cookies. Dev http://localhost => must be False.
    return settings.is_prod


def cookie_samesite() -> str:
    v = str(getattr(settings, "REFRESH_COOKIE_SAMESITE", "strict")).lower().strip()
    if v not in {"lax", "strict", "none"}:
        return "strict"
    return v


def set_refresh_cookie(resp: Response, raw_refresh_token: str) -> None:
    resp.set_cookie(
        key=cookie_name(),
        value=raw_refresh_token,
        httponly=True,
        secure=cookie_secure(),
        samesite=cookie_samesite(),
        max_age=refresh_cookie_max_age_seconds(),
        path=cookie_path(),
    )


def clear_refresh_cookie(resp: Response) -> None:
    resp.delete_cookie(
        key=cookie_name(),
        path=cookie_path(),
        httponly=True,
        secure=cookie_secure(),
        samesite=cookie_samesite(),
    )


def read_refresh_cookie(req: Request) -> str | None:
    val = req.cookies.get(cookie_name())
    if not val:
        return None
    val = val.strip()
    return val or None
