import logging
import random
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..config import TX_BACKOFF_SECONDS, TX_MAX_ATTEMPTS
from ..errors import TransactionConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None)
    if code:
        return str(code)
    diag = getattr(orig, "diag", None)
    return getattr(diag, "sqlstate", None)


def is_retryable(exc: Exception) -> bool:
    if not isinstance(exc, DBAPIError):
        return False
    # Two writers racing to insert the same deterministic key: the retry reads the winner's row.
    if isinstance(exc, IntegrityError):
        return True
    if _sqlstate(exc) in RETRYABLE_SQLSTATES:
        return True
    text = str(getattr(exc, "orig", exc)).lower()
    return "database is locked" in text or "database table is locked" in text


def run_in_transaction(
    session_factory: sessionmaker,
    work: Callable[[Session], T],
    *,
    max_attempts: int = TX_MAX_ATTEMPTS,
    backoff_seconds: float = TX_BACKOFF_SECONDS,
    label: str = "tx",
) -> T:
    """Run ``work(db)`` and commit, retrying the whole unit on write conflicts.

    ``work`` must only touch the store through ``db``; it may run more than once.
    Non-retryable errors propagate unchanged. After ``max_attempts`` conflicts a
    ``TransactionConflictError`` is raised.
    """
    last_exc: Exception | None = None
    for attempt in range(1, max(1, max_attempts) + 1):
        with session_factory() as db:
            try:
                result = work(db)
                db.commit()
                return result
            except DBAPIError as exc:
                db.rollback()
                if not is_retryable(exc):
                    raise
                last_exc = exc
                logger.info("[TX] %s conflict on attempt %s/%s: %s", label, attempt, max_attempts, exc.__class__.__name__)
        if attempt < max_attempts:
            time.sleep(backoff_seconds * attempt + random.uniform(0, backoff_seconds))

    logger.warning("[TX] %s gave up after %s attempts", label, max_attempts)
    raise TransactionConflictError(f"{label} could not be committed", attempts=max_attempts, original_error=last_exc)
