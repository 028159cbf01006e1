# eventflow/dependencies/auth.py
from __future__ import annotations

import logging

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from eventflow.auth.identity import Identity
from eventflow.core.errors import MissingToken
from eventflow.services.tokens import TokenService

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_identity(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Identity:
    """
    Validates:
      - Authorization: Bearer <token>
      - token signature + exp + purpose
    Returns:
      - Identity built from the access-token claims (no database round trip)
    """
    if not creds or creds.scheme.lower() != "bearer":
        raise MissingToken()

    identity = TokenService().verify_access(creds.credentials)
    logger.debug("Authenticated request: %s", identity.to_debug_dict())
    return identity
