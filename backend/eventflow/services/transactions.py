from __future__ import annotations

import logging
from typing import Callable, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from eventflow.core.errors import AppError, TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Aborts that a fresh read can resolve: a concurrent writer bumped the row version,
# a unique/check constraint caught a racing insert, or a lock/statement timeout fired.
RETRYABLE_ERRORS = (StaleDataError, IntegrityError, OperationalError)

MAX_ATTEMPTS = 2


def run_in_transaction(db: Session, op: Callable[[], T], *, label: str) -> T:
    """
    Run ``op`` and commit. Typed application errors roll back and propagate untouched.
    A retryable abort rolls back and re-runs ``op`` once against fresh state; a second
    abort surfaces as TransientError.
    """
    last_exc: Exception | None = None
    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            result = op()
            db.commit()
            return result
        except AppError:
            db.rollback()
            raise
        except RETRYABLE_ERRORS as exc:
            db.rollback()
            last_exc = exc
            logger.warning(
                "%s aborted (attempt %d/%d): %s",
                label,
                attempt,
                MAX_ATTEMPTS,
                exc.__class__.__name__,
            )

    raise TransientError(f"Could not complete {label}, please retry") from last_exc
