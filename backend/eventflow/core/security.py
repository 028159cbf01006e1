# eventflow/core/security.py
from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from eventflow.core.config import settings

ACCESS = "access"
REFRESH = "refresh"

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def _signing_key(purpose: str) -> str:
    key = settings.refresh_secret if purpose == REFRESH else settings.JWT_SECRET
    if not key or not key.strip():
        raise RuntimeError("JWT_SECRET must be set (auth is required).")
    return key


def _mint(purpose: str, claims: dict[str, Any], lifetime: timedelta, now: datetime | None) -> str:
    issued = now or datetime.now(timezone.utc)
    payload = {
        **claims,
        "purpose": purpose,
        "iat": int(issued.timestamp()),
        "exp": int((issued + lifetime).timestamp()),
    }
    return jwt.encode(payload, _signing_key(purpose), algorithm=settings.JWT_ALGORITHM)


def create_access_token(*, user_id: int, username: str, email: str, now: datetime | None = None) -> str:
    """Short-lived bearer token; its claims are enough to build an Identity."""
    return _mint(
        ACCESS,
        {"id": user_id, "username": username, "email": email},
        timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        now,
    )


def create_refresh_token(*, user_id: int, now: datetime | None = None) -> str:
    # jti keeps two tokens minted in the same second distinct.
    return _mint(
        REFRESH,
        {"id": user_id, "jti": secrets.token_urlsafe(16)},
        timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        now,
    )


def verify_token_purpose(token: str, expected_purpose: str) -> dict[str, Any]:
    """
    Decode ``token`` with the key for ``expected_purpose``.
    Raises ValueError for a bad signature, an expired token or a purpose mismatch.
    """
    try:
        payload = jwt.decode(token, _signing_key(expected_purpose), algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise ValueError("Invalid or expired token")

    if payload.get("purpose") != expected_purpose:
        raise ValueError("Invalid token purpose")
    return payload


def hash_refresh_token(raw_token: str) -> str:
    """
    Only this digest is stored. Keyed by JWT_SECRET so a leaked column
    can't be brute-forced offline.
    """
    key = _signing_key(ACCESS).encode("utf-8")
    return hmac.new(key, raw_token.encode("utf-8"), hashlib.sha256).hexdigest()
