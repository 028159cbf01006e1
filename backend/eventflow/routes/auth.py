# eventflow/routes/auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from eventflow.auth.identity import Identity
from eventflow.core.database import get_db
from eventflow.core.errors import UserNotFound
from eventflow.core.rate_limit import maybe_limit
from eventflow.dependencies.auth import get_current_identity
from eventflow.dependencies.verification import get_verification_service
from eventflow.schemas.auth import (
    AccessTokenOut,
    LoginIn,
    LoginOut,
    SignupIn,
    StatusOut,
    UpdatePasswordIn,
)
from eventflow.schemas.user import ExistsOut, UserMeOut
from eventflow.services import users as users_service
from eventflow.services.tokens import (
    TokenService,
    clear_refresh_cookie,
    read_refresh_cookie,
    set_refresh_cookie,
)
from eventflow.services.verification_codes import FORGOT_PASSWORD, VERIFY_EMAIL, VerificationService

router = APIRouter(tags=["auth"])


# -----------------------------
# Availability checks
# -----------------------------
@router.get("/api/check-username", response_model=ExistsOut)
def check_username(user_name: str = Query("", alias="userName"), db: Session = Depends(get_db)):
    return ExistsOut(exists=users_service.get_user_by_username(db, user_name) is not None)


@router.get("/api/check-email", response_model=ExistsOut)
def check_email(email: str = Query(""), db: Session = Depends(get_db)):
    return ExistsOut(exists=users_service.get_user_by_email(db, email) is not None)


# -----------------------------
# Account lifecycle
# -----------------------------
@router.post("/signup", response_model=StatusOut)
def signup(
    payload: SignupIn,
    db: Session = Depends(get_db),
    verification: VerificationService = Depends(get_verification_service),
):
    with verification.spend_grant(VERIFY_EMAIL, payload.email):
        users_service.create_user(
            db,
            first_name=payload.first_name,
            last_name=payload.last_name,
            email=payload.email,
            user_name=payload.user_name,
            password=payload.password,
        )

    return StatusOut(
        message="Account created successfully! Redirecting to login...",
        type="account_created",
    )


@router.post("/login", response_model=LoginOut)
@maybe_limit("10/minute")
def login(request: Request, payload: LoginIn, response: Response, db: Session = Depends(get_db)):
    user = users_service.authenticate(db, payload.identifier, payload.password)

    access_token, refresh_token = TokenService(db).start_session(user)
    set_refresh_cookie(response, refresh_token)

    return LoginOut(access_token=access_token, user=UserMeOut.model_validate(user))


@router.post("/refresh-token", response_model=AccessTokenOut)
def refresh_token(request: Request, db: Session = Depends(get_db)):
    access_token = TokenService(db).rotate_refresh(read_refresh_cookie(request))
    return AccessTokenOut(access_token=access_token)


@router.post("/logout", response_model=StatusOut)
def logout(request: Request, response: Response, db: Session = Depends(get_db)):
    TokenService(db).end_session(read_refresh_cookie(request))
    clear_refresh_cookie(response)
    return StatusOut(message="Logged out successfully")


@router.post("/update-password", response_model=StatusOut)
def update_password(
    payload: UpdatePasswordIn,
    db: Session = Depends(get_db),
    verification: VerificationService = Depends(get_verification_service),
):
    with verification.spend_grant(FORGOT_PASSWORD, payload.email):
        users_service.update_password(db, payload.email, payload.new_password)
    return StatusOut(message="Password updated successfully", type="UPDATED_PASSWORD")


@router.get("/api/auth/me", response_model=UserMeOut)
def me(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    user = users_service.get_user_by_id(db, identity.user_id)
    if not user:
        raise UserNotFound()
    return user
