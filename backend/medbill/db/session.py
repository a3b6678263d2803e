"""Database session and the write-transaction scope used by the billing engine.

One till, one writer: SQLite by default. Every sale, return, stocking and
payment runs inside ``unit_of_work`` so a half-written bill can never be
committed, and ``run_with_retry`` repeats the whole unit on transient lock
errors only.
"""
import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from medbill.core.config import settings
from medbill.core.exceptions import StorageUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_MARKERS = ("database is locked", "database is busy", "lock wait timeout", "deadlock")


def build_engine(url: str):
    """Create an engine. SQLite gets foreign keys and a busy timeout."""
    if url.startswith("sqlite"):
        from sqlalchemy.pool import NullPool

        eng = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 5},
            poolclass=NullPool,
        )
        _enable_sqlite_foreign_keys(eng)
        return eng
    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=3600,
        pool_pre_ping=True,
    )


def _enable_sqlite_foreign_keys(eng) -> None:
    @event.listens_for(eng, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def is_transient(exc: BaseException) -> bool:
    """Lock contention / busy database. Business-rule failures never qualify."""
    if not isinstance(exc, OperationalError):
        return False
    text = str(exc).lower()
    return any(marker in text for marker in _TRANSIENT_MARKERS)


@contextmanager
def unit_of_work(session_factory: Callable[[], Session] = SessionLocal) -> Iterator[Session]:
    """
    Scoped write transaction:
    - commit on success
    - rollback on any exception
    - session always closed
    """
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def run_with_retry(
    work: Callable[[Session], T],
    session_factory: Callable[[], Session] = SessionLocal,
    attempts: int | None = None,
    backoff: float | None = None,
) -> T:
    """
    Run ``work`` inside a fresh unit_of_work, retrying the whole transaction
    when the store reports transient lock contention.

    Raises StorageUnavailable once retries are exhausted. Any other exception
    propagates on the first attempt.
    """
    attempts = attempts if attempts is not None else max(1, settings.DB_LOCK_RETRIES)
    backoff = backoff if backoff is not None else settings.DB_LOCK_RETRY_BACKOFF_SECONDS

    for attempt in range(1, attempts + 1):
        try:
            with unit_of_work(session_factory) as db:
                return work(db)
        except OperationalError as e:
            if not is_transient(e):
                raise
            logger.warning(f"Transient storage error (attempt {attempt}/{attempts}): {e}")
            if attempt == attempts:
                raise StorageUnavailable(f"Storage busy after {attempts} attempts") from e
            time.sleep(backoff * attempt)
    raise StorageUnavailable("Storage busy")
