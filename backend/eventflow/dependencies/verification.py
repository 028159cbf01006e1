from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from eventflow.core.database import get_db
from eventflow.services.verification_codes import VerificationCodeCache, VerificationService, get_code_cache


def get_verification_service(
    db: Session = Depends(get_db),
    cache: VerificationCodeCache = Depends(get_code_cache),
) -> VerificationService:
    return VerificationService(db, cache)
