from __future__ import annotations

import hmac
import heapq
import logging
import secrets
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator

from sqlalchemy.orm import Session

from eventflow.core.config import settings
from eventflow.core.errors import (
    CodeExpired,
    DuplicateAccount,
    EmailNotVerified,
    InvalidCode,
    ResetNotVerified,
    TransientError,
)
from eventflow.services.email import EmailDeliveryError, EmailNotConfiguredError, send_verification_code
from eventflow.services.users import get_user_by_email, normalize_email

logger = logging.getLogger(__name__)

VERIFY_EMAIL = "VERIFY_EMAIL"
FORGOT_PASSWORD = "FORGOT_PASSWORD"

_MISSING_GRANT_ERRORS = {VERIFY_EMAIL: EmailNotVerified, FORGOT_PASSWORD: ResetNotVerified}

_CODE_KIND = "code"
_GRANT_KIND = "grant"
_LOCK_STRIPES = 64


@dataclass(frozen=True)
class _Entry:
    value: str
    expires_at: float


class VerificationCodeCache:
    """
    Process-local keyed store: (purpose, email) -> one-time 6-digit code, each entry
    with its own expiry.

    - issue() overwrites any live code for the key (last issue wins)
    - verify() consumes only on a match; a wrong code leaves the entry for retry
    - expired entries are evicted lazily through an expiry-ordered heap

    Operations on one key are serialized by a striped lock; different keys only
    share the short table lock around dict/heap updates.
    """

    def __init__(self, ttl_seconds: int | None = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = int(ttl_seconds or settings.VERIFICATION_CODE_TTL_SECONDS)
        self._clock = clock
        self._entries: dict[tuple[str, str, str], _Entry] = {}
        self._expiry_heap: list[tuple[float, tuple[str, str, str]]] = []
        self._table_lock = threading.Lock()
        self._key_locks = [threading.Lock() for _ in range(_LOCK_STRIPES)]

    # -----------------------------
    # Codes
    # -----------------------------
    def issue(self, purpose: str, email: str) -> str:
        code = f"{100000 + secrets.randbelow(900000)}"
        key = self._key(_CODE_KIND, purpose, email)
        with self._lock_for(key):
            self._put(key, code)
        return code

    def verify(self, purpose: str, email: str, code: str) -> bool:
        """
        Raises CodeExpired when no live code exists for the key.
        Returns False (entry kept) on mismatch, True (entry consumed) on match.
        """
        key = self._key(_CODE_KIND, purpose, email)
        submitted = (code or "").strip()
        with self._lock_for(key):
            entry = self._live_entry(key)
            if entry is None:
                raise CodeExpired()
            if not hmac.compare_digest(entry.value.encode("utf-8"), submitted.encode("utf-8")):
                return False
            self._delete(key)
            return True

    # -----------------------------
    # Grants: proof that a code for (purpose, email) was matched recently
    # -----------------------------
    def grant(self, purpose: str, email: str) -> None:
        key = self._key(_GRANT_KIND, purpose, email)
        with self._lock_for(key):
            self._put(key, "1")

    def take_grant(self, purpose: str, email: str) -> float | None:
        """
        Remove a live grant in one step and return its expiry, or None when there is
        none. Of any number of concurrent callers at most one gets the grant.
        """
        key = self._key(_GRANT_KIND, purpose, email)
        with self._lock_for(key):
            entry = self._live_entry(key)
            if entry is None:
                return None
            self._delete(key)
            return entry.expires_at

    def restore_grant(self, purpose: str, email: str, expires_at: float) -> None:
        """Put back a grant removed by take_grant, keeping its original expiry."""
        key = self._key(_GRANT_KIND, purpose, email)
        with self._lock_for(key):
            if expires_at <= self._clock():
                return
            current = self._live_entry(key)
            # A newer verification may have granted again meanwhile; keep the later expiry.
            if current is not None and current.expires_at >= expires_at:
                return
            self._put(key, "1", expires_at=expires_at)

    # -----------------------------
    # Maintenance
    # -----------------------------
    def purge_expired(self) -> int:
        now = self._clock()
        removed = 0
        with self._table_lock:
            while self._expiry_heap and self._expiry_heap[0][0] <= now:
                expires_at, key = heapq.heappop(self._expiry_heap)
                entry = self._entries.get(key)
                # Skip heap records left behind by an overwrite or a consume.
                if entry is not None and entry.expires_at == expires_at:
                    del self._entries[key]
                    removed += 1
        return removed

    def __len__(self) -> int:
        with self._table_lock:
            return len(self._entries)

    # -----------------------------
    # Internals
    # -----------------------------
    @staticmethod
    def _key(kind: str, purpose: str, email: str) -> tuple[str, str, str]:
        return kind, (purpose or "").strip().upper(), normalize_email(email)

    def _lock_for(self, key: tuple[str, str, str]) -> threading.Lock:
        return self._key_locks[hash(key) % _LOCK_STRIPES]

    def _put(self, key: tuple[str, str, str], value: str, *, expires_at: float | None = None) -> None:
        self.purge_expired()
        if expires_at is None:
            expires_at = self._clock() + self.ttl_seconds
        with self._table_lock:
            self._entries[key] = _Entry(value=value, expires_at=expires_at)
            heapq.heappush(self._expiry_heap, (expires_at, key))

    def _live_entry(self, key: tuple[str, str, str]) -> _Entry | None:
        now = self._clock()
        with self._table_lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= now:
                del self._entries[key]
                return None
            return entry

    def _delete(self, key: tuple[str, str, str]) -> None:
        with self._table_lock:
            self._entries.pop(key, None)


_cache: VerificationCodeCache | None = None
_lock = threading.Lock()


def get_code_cache() -> VerificationCodeCache:
    global _cache
    if _cache is not None:
        return _cache
    with _lock:
        if _cache is None:
            _cache = VerificationCodeCache()
    return _cache


def reset_code_cache() -> None:
    """
    Test helper to ensure a fresh cache is constructed after settings change.
    """

    global _cache
    with _lock:
        _cache = None


class VerificationService:
    """
    Account rules around the code cache: who may request a code, how it is
    delivered and which flows need a matched code before they proceed.
    """

    def __init__(self, db: Session, cache: VerificationCodeCache):
        self.db = db
        self.cache = cache

    def send_code(self, purpose: str, email: str, *, first_name: str = "", last_name: str = "") -> None:
        email = normalize_email(email)

        if purpose == VERIFY_EMAIL and get_user_by_email(self.db, email):
            raise DuplicateAccount("Email already registered")

        code = self.cache.issue(purpose, email)
        try:
            send_verification_code(
                to_email=email,
                code=code,
                purpose=purpose,
                first_name=first_name,
                last_name=last_name,
                expires_minutes=max(1, self.cache.ttl_seconds // 60),
            )
        except (EmailNotConfiguredError, EmailDeliveryError) as exc:
            logger.exception("Verification code delivery failed: purpose=%s", purpose)
            raise TransientError("Failed to send verification code. Please try again.") from exc

        logger.info("Verification code issued: purpose=%s", purpose)

    def confirm_code(self, purpose: str, email: str, code: str) -> None:
        if not self.cache.verify(purpose, email, code):
            raise InvalidCode()
        self.cache.grant(purpose, email)

    @contextmanager
    def spend_grant(self, purpose: str, email: str) -> Iterator[None]:
        """
        Hold the one-time grant for (purpose, email) while the block runs.

        The grant is taken up front, so a concurrent request for the same key finds
        none. If the block raises (duplicate username, weak password, ...) it is put
        back with its original expiry and the user can retry without a new code.
        """
        expires_at = self.cache.take_grant(purpose, email)
        if expires_at is None and settings.REQUIRE_VERIFIED_EMAIL:
            raise _MISSING_GRANT_ERRORS[purpose]()
        try:
            yield
        except Exception:
            if expires_at is not None:
                self.cache.restore_grant(purpose, email, expires_at)
            raise
