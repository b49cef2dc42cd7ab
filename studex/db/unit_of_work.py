# studex/db/unit_of_work.py
from __future__ import annotations

import logging
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from studex.core.config import get_settings
from studex.core.errors import ConcurrencyConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Losing an optimistic-lock race (version counter) or a unique-key race
# (lazy account creation, per-contract settlement, idempotency keys) re-runs
# the whole unit. Other integrity errors (CHECK, NOT NULL, FK) are permanent.
RETRYABLE = (StaleDataError, IntegrityError)

UNIQUE_VIOLATION_PGCODE = "23505"


def is_race(exc: Exception) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    if not isinstance(exc, IntegrityError):
        return False
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) == UNIQUE_VIOLATION_PGCODE:
        return True
    # sqlite3 has no error codes on the exception, only the message
    return "UNIQUE constraint failed" in str(orig)


def run_in_transaction(
    db: Session,
    work: Callable[[], T],
    *,
    retries: Optional[int] = None,
    label: str = "unit_of_work",
) -> T:
    """
    Execute `work` and commit, as one atomic unit.

    - any exception rolls the session back before propagating
    - conflicts are retried with fresh state (objects are expired on rollback)
    - integrity errors other than unique-key races propagate unchanged
    - after `retries` conflicts, ConcurrencyConflict is raised
    """
    attempts = retries if retries is not None else get_settings().conflict_retries
    last_exc: Optional[Exception] = None

    for attempt in range(1, max(1, attempts) + 1):
        try:
            result = work()
            db.commit()
            return result
        except RETRYABLE as exc:
            db.rollback()
            if not is_race(exc):
                raise
            last_exc = exc
            logger.warning(
                "[uow] %s conflict on attempt %d/%d: %s",
                label, attempt, attempts, exc.__class__.__name__,
            )
        except Exception:
            db.rollback()
            raise

    raise ConcurrencyConflict() from last_exc
