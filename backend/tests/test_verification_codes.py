from __future__ import annotations

import itertools
import threading

import pytest

from eventflow.core import config as app_config
from eventflow.core.errors import (
    CodeExpired,
    DuplicateAccount,
    InvalidCode,
    ResetNotVerified,
    TransientError,
    WeakPassword,
)
from eventflow.services import verification_codes as verification_module
from eventflow.services.email import EmailDeliveryError
from eventflow.services.verification_codes import (
    FORGOT_PASSWORD,
    VERIFY_EMAIL,
    VerificationCodeCache,
    VerificationService,
    get_code_cache,
    reset_code_cache,
)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def cache(clock):
    return VerificationCodeCache(ttl_seconds=300, clock=clock)


def test_issued_code_is_six_digits(cache):
    for _ in range(50):
        code = cache.issue(VERIFY_EMAIL, "a@example.com")
        assert len(code) == 6
        assert code.isdigit()
        assert 100000 <= int(code) <= 999999


def test_verify_consumes_on_match(cache):
    code = cache.issue(VERIFY_EMAIL, "a@example.com")

    assert cache.verify(VERIFY_EMAIL, "a@example.com", code) is True
    with pytest.raises(CodeExpired):
        cache.verify(VERIFY_EMAIL, "a@example.com", code)


def test_wrong_code_does_not_consume(cache):
    code = cache.issue(VERIFY_EMAIL, "a@example.com")
    wrong = "000000" if code != "000000" else "111111"

    assert cache.verify(VERIFY_EMAIL, "a@example.com", wrong) is False
    assert cache.verify(VERIFY_EMAIL, "a@example.com", code) is True


def test_code_expires_after_ttl(cache, clock):
    code = cache.issue(FORGOT_PASSWORD, "a@example.com")
    clock.advance(299)
    assert cache.verify(FORGOT_PASSWORD, "a@example.com", "not-it") is False

    clock.advance(2)
    with pytest.raises(CodeExpired):
        cache.verify(FORGOT_PASSWORD, "a@example.com", code)


def test_reissue_overwrites_previous_code(cache, clock, monkeypatch):
    codes = iter([111111 - 100000, 222222 - 100000])
    monkeypatch.setattr(verification_module.secrets, "randbelow", lambda n: next(codes))

    first = cache.issue(VERIFY_EMAIL, "a@example.com")
    clock.advance(200)
    second = cache.issue(VERIFY_EMAIL, "a@example.com")
    assert (first, second) == ("111111", "222222")

    assert cache.verify(VERIFY_EMAIL, "a@example.com", first) is False
    # The new code carries a fresh TTL.
    clock.advance(200)
    assert cache.verify(VERIFY_EMAIL, "a@example.com", second) is True


def test_keys_are_scoped_by_purpose_and_normalized_email(cache):
    code = cache.issue(VERIFY_EMAIL, "  Mixed@Example.COM ")

    with pytest.raises(CodeExpired):
        cache.verify(FORGOT_PASSWORD, "mixed@example.com", code)
    assert cache.verify("verify_email", "mixed@example.com", code) is True


def test_purge_expired_evicts_stale_entries(cache, clock):
    cache.issue(VERIFY_EMAIL, "a@example.com")
    cache.issue(VERIFY_EMAIL, "b@example.com")
    clock.advance(100)
    cache.issue(VERIFY_EMAIL, "c@example.com")
    assert len(cache) == 3

    clock.advance(250)
    assert cache.purge_expired() == 2
    assert len(cache) == 1


def test_grants_are_single_use(cache, clock):
    assert cache.take_grant(VERIFY_EMAIL, "a@example.com") is None

    cache.grant(VERIFY_EMAIL, "a@example.com")
    assert cache.take_grant(VERIFY_EMAIL, "A@example.com") == clock.now + 300
    assert cache.take_grant(VERIFY_EMAIL, "a@example.com") is None

    cache.grant(FORGOT_PASSWORD, "a@example.com")
    clock.advance(301)
    assert cache.take_grant(FORGOT_PASSWORD, "a@example.com") is None


def test_restored_grant_keeps_its_original_expiry(cache, clock):
    cache.grant(FORGOT_PASSWORD, "a@example.com")
    expires_at = cache.take_grant(FORGOT_PASSWORD, "a@example.com")

    clock.advance(200)
    cache.restore_grant(FORGOT_PASSWORD, "a@example.com", expires_at)
    clock.advance(99)
    assert cache.take_grant(FORGOT_PASSWORD, "a@example.com") == expires_at

    cache.restore_grant(FORGOT_PASSWORD, "a@example.com", expires_at)
    clock.advance(2)
    assert cache.take_grant(FORGOT_PASSWORD, "a@example.com") is None


def test_restore_never_shortens_a_newer_grant(cache, clock):
    cache.grant(VERIFY_EMAIL, "a@example.com")
    old_expiry = cache.take_grant(VERIFY_EMAIL, "a@example.com")

    clock.advance(100)
    cache.grant(VERIFY_EMAIL, "a@example.com")
    cache.restore_grant(VERIFY_EMAIL, "a@example.com", old_expiry)

    assert cache.take_grant(VERIFY_EMAIL, "a@example.com") == clock.now + 300


def test_concurrent_verifies_consume_exactly_once():
    cache = VerificationCodeCache(ttl_seconds=300)
    code = cache.issue(VERIFY_EMAIL, "race@example.com")
    barrier = threading.Barrier(8)
    outcomes: list[str] = []
    outcomes_lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            result = "matched" if cache.verify(VERIFY_EMAIL, "race@example.com", code) else "mismatch"
        except CodeExpired:
            result = "expired"
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("matched") == 1
    assert outcomes.count("expired") == 7


def test_verify_racing_reissue_matches_only_the_code_it_was_given(monkeypatch):
    cache = VerificationCodeCache(ttl_seconds=300)
    email = "race@example.com"
    sequence = itertools.count(1)
    sequence_lock = threading.Lock()

    def _next_code(n):
        with sequence_lock:
            return next(sequence)

    # Distinct codes, so a stale code can never equal the fresh one by chance.
    monkeypatch.setattr(verification_module.secrets, "randbelow", _next_code)

    outcomes = {True: 0, False: 0}
    for _ in range(200):
        stale = cache.issue(VERIFY_EMAIL, email)
        barrier = threading.Barrier(2)
        result: dict = {}

        def reissue():
            barrier.wait()
            result["fresh"] = cache.issue(VERIFY_EMAIL, email)

        def verify_stale():
            barrier.wait()
            result["matched"] = cache.verify(VERIFY_EMAIL, email, stale)

        threads = [threading.Thread(target=reissue), threading.Thread(target=verify_stale)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        outcomes[result["matched"]] += 1
        # In either order the reissued code is live, and it is the only code that matches.
        assert cache.verify(VERIFY_EMAIL, email, stale) is False
        assert cache.verify(VERIFY_EMAIL, email, result["fresh"]) is True

    assert sum(outcomes.values()) == 200


def test_get_code_cache_is_a_lazy_singleton():
    reset_code_cache()
    try:
        first = get_code_cache()
        assert get_code_cache() is first
        reset_code_cache()
        assert get_code_cache() is not first
    finally:
        reset_code_cache()


# -----------------------------
# VerificationService
# -----------------------------
def test_send_code_refuses_registered_email_for_signup(db_session, users, cache, outbox):
    service = VerificationService(db_session, cache)

    with pytest.raises(DuplicateAccount):
        service.send_code(VERIFY_EMAIL, "Alice@example.com")
    assert outbox == []
    assert len(cache) == 0


def test_send_code_for_password_reset_delivers_code(db_session, users, cache, outbox):
    service = VerificationService(db_session, cache)

    service.send_code(FORGOT_PASSWORD, "alice@example.com")

    assert len(outbox) == 1
    sent = outbox[0]
    assert sent["to_email"] == "alice@example.com"
    assert sent["purpose"] == FORGOT_PASSWORD
    assert sent["expires_minutes"] == 5
    assert cache.verify(FORGOT_PASSWORD, "alice@example.com", sent["code"]) is True


def test_delivery_failure_is_transient_and_keeps_code(db_session, cache, monkeypatch):
    def _boom(**kwargs):
        raise EmailDeliveryError("SMTP send failed")

    monkeypatch.setattr(verification_module, "send_verification_code", _boom)
    service = VerificationService(db_session, cache)

    with pytest.raises(TransientError):
        service.send_code(VERIFY_EMAIL, "new@example.com")
    assert len(cache) == 1


def test_confirm_code_grants_on_match(db_session, cache):
    service = VerificationService(db_session, cache)
    code = cache.issue(VERIFY_EMAIL, "new@example.com")
    wrong = "000000" if code != "000000" else "111111"

    with pytest.raises(InvalidCode):
        service.confirm_code(VERIFY_EMAIL, "new@example.com", wrong)
    assert cache.take_grant(VERIFY_EMAIL, "new@example.com") is None

    service.confirm_code(VERIFY_EMAIL, "new@example.com", code)
    assert cache.take_grant(VERIFY_EMAIL, "new@example.com") is not None


def test_spend_grant_admits_a_single_concurrent_caller(db_session):
    cache = VerificationCodeCache(ttl_seconds=300)
    service = VerificationService(db_session, cache)
    cache.grant(FORGOT_PASSWORD, "race@example.com")

    callers = 8
    barrier = threading.Barrier(callers)
    others_done = threading.Event()
    outcomes: list[str] = []
    outcomes_lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            with service.spend_grant(FORGOT_PASSWORD, "race@example.com"):
                with outcomes_lock:
                    outcomes.append("spent")
                # Hold the grant until every other caller has been turned away.
                others_done.wait(timeout=5)
        except ResetNotVerified:
            with outcomes_lock:
                outcomes.append("refused")
                if outcomes.count("refused") == callers - 1:
                    others_done.set()

    threads = [threading.Thread(target=worker) for _ in range(callers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("spent") == 1
    assert outcomes.count("refused") == callers - 1
    assert cache.take_grant(FORGOT_PASSWORD, "race@example.com") is None


def test_spend_grant_puts_the_grant_back_when_the_block_fails(db_session, cache):
    service = VerificationService(db_session, cache)
    cache.grant(FORGOT_PASSWORD, "a@example.com")

    with pytest.raises(WeakPassword):
        with service.spend_grant(FORGOT_PASSWORD, "a@example.com"):
            raise WeakPassword()

    with service.spend_grant(FORGOT_PASSWORD, "a@example.com"):
        pass
    with pytest.raises(ResetNotVerified):
        with service.spend_grant(FORGOT_PASSWORD, "a@example.com"):
            pass


def test_spend_grant_without_required_verification(db_session, cache):
    app_config.settings.REQUIRE_VERIFIED_EMAIL = False
    service = VerificationService(db_session, cache)

    ran = []
    with service.spend_grant(VERIFY_EMAIL, "new@example.com"):
        ran.append(True)
    assert ran == [True]
