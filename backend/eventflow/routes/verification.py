from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from eventflow.core.rate_limit import maybe_limit
from eventflow.dependencies.verification import get_verification_service
from eventflow.schemas.auth import SendCodeIn, StatusOut, VerifyCodeIn
from eventflow.services.verification_codes import VERIFY_EMAIL, VerificationService

router = APIRouter(prefix="/api", tags=["verification"])


@router.post("/verify-email", response_model=StatusOut)
@maybe_limit("5/minute")
def send_code(
    request: Request,
    payload: SendCodeIn,
    verification: VerificationService = Depends(get_verification_service),
):
    verification.send_code(
        payload.type,
        payload.email,
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    return StatusOut(
        message="Verification code sent successfully. Check your inbox.",
        type=payload.type,
    )


@router.post("/verify-code", response_model=StatusOut)
@maybe_limit("10/minute")
def verify_code(
    request: Request,
    payload: VerifyCodeIn,
    verification: VerificationService = Depends(get_verification_service),
):
    verification.confirm_code(payload.type, payload.email, payload.code)
    message = "Email verified successfully!" if payload.type == VERIFY_EMAIL else "Code verified successfully!"
    return StatusOut(message=message, type=payload.type)
