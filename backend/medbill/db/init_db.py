"""Create all tables and seed the bill sequence. Run on app startup."""
import logging

from medbill.core.config import settings
from medbill.db.base import Base
from medbill.db.session import engine, unit_of_work, SessionLocal
from medbill import models  # noqa: F401 - register models
from medbill.services.sequence_service import initialize_sequence

logger = logging.getLogger(__name__)


def init_db(bind=None, session_factory=SessionLocal):
    Base.metadata.create_all(bind=bind or engine)

    # The persisted row wins after first start; only a new fiscal year resets it.
    with unit_of_work(session_factory) as db:
        row = initialize_sequence(db, settings.BILL_PREFIX, settings.FINANCIAL_YEAR)
        logger.info(
            f"Bill sequence ready: {row.prefix} {row.financial_year} at {row.current_number}"
        )
