# eventflow/services/users.py
"""
Credential store.

Responsibilities:
- Account creation with unique email / username
- Lookup by email, username or login identifier
- Credential verification (argon2 via passlib)
- Password replacement after a verified reset
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eventflow.core.errors import DuplicateAccount, InvalidCredentials, UserNotFound
from eventflow.core.password_policy import ensure_strong_password
from eventflow.core.security import hash_password, verify_password
from eventflow.models.user import User

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
    return db.get(User, user_id)


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    """Look up a user by email address."""
    return db.query(User).filter(User.email == normalize_email(email)).first()


def get_user_by_username(db: Session, user_name: str) -> Optional[User]:
    return db.query(User).filter(User.user_name == (user_name or "").strip()).first()


def find_by_identifier(db: Session, identifier: str) -> Optional[User]:
    """Login accepts either the email or the username."""
    ident = (identifier or "").strip()
    if not ident:
        return None
    return (
        db.query(User)
        .filter(or_(User.email == ident.lower(), User.user_name == ident))
        .first()
    )


def create_user(
    db: Session,
    *,
    first_name: str,
    last_name: str,
    email: str,
    user_name: str,
    password: str,
) -> User:
    """
    Create a verified account. Callers are responsible for the email-verification gate.

    Raises:
        DuplicateAccount: email or username already taken (including a concurrent signup)
        WeakPassword: password fails policy
    """
    normalized_email = normalize_email(email)
    normalized_user_name = (user_name or "").strip()

    existing = (
        db.query(User)
        .filter(or_(User.email == normalized_email, User.user_name == normalized_user_name))
        .first()
    )
    if existing:
        raise DuplicateAccount()

    ensure_strong_password(password, email=normalized_email, username=normalized_user_name)

    user = User(
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        email=normalized_email,
        user_name=normalized_user_name,
        password_hash=hash_password(password),
        is_verified=True,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        # Lost a race against another signup for the same email/username.
        db.rollback()
        raise DuplicateAccount() from exc
    db.refresh(user)

    logger.info("Created account: id=%s user_name=%s", user.id, user.user_name)
    return user


def authenticate(db: Session, identifier: str, password: str) -> User:
    """
    Raises:
        UserNotFound (404) when no account matches the identifier
        InvalidCredentials (401) when the password is wrong
    """
    user = find_by_identifier(db, identifier)
    if not user:
        raise UserNotFound("Invalid credentials")
    if not verify_password(password, user.password_hash):
        raise InvalidCredentials()
    return user


def update_password(db: Session, email: str, new_password: str) -> bool:
    """
    Replace the password for the account with this email.
    Returns False when no such account exists (the response stays the same either way).
    """
    user = get_user_by_email(db, email)
    ensure_strong_password(new_password, email=email, username=user.user_name if user else None)
    if not user:
        return False

    user.password_hash = hash_password(new_password)
    db.add(user)
    db.commit()
    logger.info("Password updated for user id=%s", user.id)
    return True
