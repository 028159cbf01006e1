import os
import tempfile

# Settings are read at import time: JWT_SECRET for require_jwt_secret(), DATABASE_URL so the
# module-level engine never needs a Postgres driver, UPLOAD_DIR for the static mount.
os.environ.setdefault("JWT_SECRET", "test_jwt_secret")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="eventflow-uploads-"))

from contextlib import contextmanager
from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
import importlib

from eventflow.auth.identity import Identity
from eventflow.core.base import Base
from eventflow.core import config as app_config
from eventflow.core.security import hash_password

# Import models so they register with SQLAlchemy metadata.
from eventflow.models.user import User  # noqa: F401
from eventflow.models.event import Event  # noqa: F401
from eventflow.models.event_attendee import EventAttendee  # noqa: F401

from eventflow.core.database import get_db
from eventflow.dependencies.auth import get_current_identity
from eventflow.services import verification_codes as verification_module
from eventflow.services.verification_codes import VerificationCodeCache, get_code_cache

TEST_PASSWORD = "Correct-Horse-42"


@pytest.fixture(scope="session")
def db_engine():
    # In-memory SQLite for fast, isolated tests.
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture()
def db_session(db_engine):
    # The in-memory DB persists across tests with StaticPool; reset schema per test.
    Base.metadata.drop_all(bind=db_engine)
    Base.metadata.create_all(bind=db_engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def file_session_factory(tmp_path):
    """
    sessionmaker bound to a file-backed SQLite database, for tests that need one
    connection per thread (the in-memory StaticPool shares a single connection).
    """
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'eventflow.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    """
    Capture verification emails instead of sending them. Each entry holds the
    keyword arguments passed to send_verification_code (to_email, code, purpose, ...).
    """
    sent: list[dict] = []

    def _fake_send(**kwargs):
        sent.append(kwargs)
        return "msg_test_123"

    monkeypatch.setattr(verification_module, "send_verification_code", _fake_send)
    return sent


@pytest.fixture(autouse=True)
def _reset_mutable_settings():
    """
    Tests sometimes tweak global settings (app_config.settings.*). Restore them after each
    test so the process-global object does not couple tests together.
    """
    keys = [
        "MAX_UPLOAD_BYTES",
        "ENABLE_RATE_LIMITING",
        "PASSWORD_MIN_LENGTH",
        "REQUIRE_VERIFIED_EMAIL",
        "ACCESS_TOKEN_EXPIRE_MINUTES",
        "UPLOAD_DIR",
    ]
    original = {k: getattr(app_config.settings, k) for k in keys}
    try:
        yield
    finally:
        for k, v in original.items():
            setattr(app_config.settings, k, v)
        # Default all tests to "rate limiting disabled" unless a test explicitly reloads routes with it enabled.
        app_config.settings.ENABLE_RATE_LIMITING = False


@pytest.fixture()
def code_cache():
    return VerificationCodeCache(ttl_seconds=300)


@pytest.fixture()
def app(db_session, code_cache):
    app_config.settings.JWT_SECRET = app_config.settings.JWT_SECRET or "test_jwt_secret"
    app_config.settings.ENABLE_RATE_LIMITING = False

    # SlowAPI decorators bind at import time, so reload the limited routes + app with
    # rate limiting disabled (the rate limiting test reloads them with it enabled).
    import eventflow.routes.auth as auth_routes
    import eventflow.routes.verification as verification_routes
    import eventflow.main as main

    importlib.reload(auth_routes)
    importlib.reload(verification_routes)
    importlib.reload(main)
    fastapi_app = main.app

    def override_get_db():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_code_cache] = lambda: code_cache
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


def make_user(db, *, user_name: str, email: str, first_name: str = "Test", last_name: str = "User") -> User:
    user = User(
        first_name=first_name,
        last_name=last_name,
        email=email,
        user_name=user_name,
        password_hash=hash_password(TEST_PASSWORD),
        is_verified=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_event(db, owner: User, *, capacity: int = 10, title: str = "Community Meetup", **overrides) -> Event:
    fields = {
        "title": title,
        "description": "An evening of talks",
        "date": date.today() + timedelta(days=7),
        "time": "18:30",
        "location": "Main Hall",
        "category": "Technology",
        "capacity": capacity,
        "attendee_count": 0,
        "created_by": owner.id,
    }
    fields.update(overrides)
    event = Event(**fields)
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def identity_for(user: User) -> Identity:
    return Identity(user_id=user.id, username=user.user_name, email=user.email)


@pytest.fixture()
def users(db_session):
    """
    Three distinct verified users: an event owner and two would-be attendees.
    """
    owner = make_user(db_session, user_name="owner", email="owner@example.com", first_name="Olive")
    alice = make_user(db_session, user_name="alice", email="alice@example.com", first_name="Alice")
    bob = make_user(db_session, user_name="bob", email="bob@example.com", first_name="Bob")
    return owner, alice, bob


@pytest.fixture()
def anon_client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def client(app, users):
    """
    Default client authenticated as the event owner.
    """
    owner, _, _ = users
    identity = identity_for(owner)
    app.dependency_overrides[get_current_identity] = lambda: identity
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.pop(get_current_identity, None)


@pytest.fixture()
def client_for(app):
    """
    Context manager to create a client authenticated as an arbitrary user.

    Usage:
        with client_for(user) as c:
            ...
    """

    @contextmanager
    def _client_for(user: User):
        identity = identity_for(user)
        app.dependency_overrides[get_current_identity] = lambda: identity
        with TestClient(app) as c:
            yield c
        app.dependency_overrides.pop(get_current_identity, None)

    return _client_for


@pytest.fixture()
def user_factory():
    """make_user(db, user_name=..., email=...) for tests that manage their own session."""
    return make_user


@pytest.fixture()
def event_factory():
    """make_event(db, owner, capacity=..., **overrides)."""
    return make_event
