from contextlib import contextmanager
from typing import Callable, Generator, TypeVar
import logging

from sqlalchemy import create_engine, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import DATABASE_URL, LOCK_TIMEOUT_MS
from .errors import ConcurrencyConflictError


logger = logging.getLogger(__name__)

T = TypeVar("T")

# lock_not_available, serialization_failure, deadlock_detected
LOCK_CONFLICT_SQLSTATES = {"55P03", "40001", "40P01"}

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=connect_args)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _is_lock_conflict(exc: DBAPIError) -> bool:
    orig = exc.orig
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in LOCK_CONFLICT_SQLSTATES:
        return True
    return "database is locked" in str(orig).lower()


@contextmanager
def atomic(db: Session, lock_timeout_ms: int | None = None) -> Generator[Session, None, None]:
    """Run a unit of work that either fully applies or leaves the session rolled back.

    The caller still owns the commit. On PostgreSQL row locks taken inside the block wait at
    most ``lock_timeout_ms`` before the work is abandoned with a retryable
    ``ConcurrencyConflictError``.
    """
    timeout = LOCK_TIMEOUT_MS if lock_timeout_ms is None else lock_timeout_ms
    try:
        if timeout and db.get_bind().dialect.name == "postgresql":
            db.execute(text(f"SET LOCAL lock_timeout = {int(timeout)}"))
        yield db
        db.flush()
    except DBAPIError as exc:
        db.rollback()
        if _is_lock_conflict(exc):
            logger.warning("Lock contention, transaction rolled back: %s", exc.orig)
            raise ConcurrencyConflictError(
                "The records are being changed by another request. Retry the operation."
            ) from exc
        raise
    except Exception:
        db.rollback()
        raise


def run_with_retry(operation: Callable[[], T], retries: int = 1) -> T:
    attempt = 0
    while True:
        try:
            return operation()
        except ConcurrencyConflictError:
            if attempt >= retries:
                raise
            attempt += 1
            logger.info("Retrying after concurrency conflict (attempt %s of %s)", attempt, retries)
