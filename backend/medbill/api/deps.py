"""FastAPI dependencies: DB session and the session factory for retried writes.

Reads and simple catalog writes use get_db. Money- and stock-moving routes run
through run_with_retry with the factory from get_session_factory so the whole
transaction can be replayed on a transient lock.
"""
from typing import Callable, Generator

from sqlalchemy.orm import Session

from medbill.db.session import SessionLocal


def get_db() -> Generator[Session, None, None]:
    """Get database session. Anything not committed by the route is rolled back."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_session_factory() -> Callable[[], Session]:
    return SessionLocal
