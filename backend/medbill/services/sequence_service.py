"""Bill number allocation from the singleton bill_sequence row.

The increment is one UPDATE ... RETURNING in the caller's transaction (no commit),
so a sale that rolls back also rolls back its number: numbers are consumed
only by committed bills.

Format: {prefix}-{YY}{YY}-{NNNNN}, e.g. INV-2425-00001.
"""
import logging
import re

from sqlalchemy import update
from sqlalchemy.orm import Session

from medbill.core.exceptions import SequenceNotInitialized
from medbill.models.bill_sequence import BillSequence

logger = logging.getLogger(__name__)

SEQUENCE_ROW_ID = 1
NUMBER_PADDING = 5

_FY_PATTERN = re.compile(r"^(\d{2,4})\s*[-/]\s*(\d{2,4})$")


def fiscal_year_code(financial_year: str) -> str:
    """'2024-25' -> '2425'. Also accepts '2024-2025' and '24-25'."""
    m = _FY_PATTERN.match((financial_year or "").strip())
    if not m:
        raise SequenceNotInitialized(f"Malformed financial year on bill_sequence: {financial_year!r}")
    start, end = m.groups()
    return f"{start[-2:]}{end[-2:]}"


def format_bill_number(prefix: str, financial_year: str, number: int) -> str:
    return f"{prefix}-{fiscal_year_code(financial_year)}-{number:0{NUMBER_PADDING}d}"


def _sequence_row(db: Session) -> BillSequence | None:
    return db.query(BillSequence).filter(BillSequence.id == SEQUENCE_ROW_ID).first()


def _increment(db: Session) -> int:
    # Single UPDATE ... RETURNING: the increment happens under the write lock,
    # so two sales can never read the same counter.
    stmt = (
        update(BillSequence)
        .where(BillSequence.id == SEQUENCE_ROW_ID)
        .values(current_number=BillSequence.current_number + 1)
        .returning(BillSequence.current_number)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).scalar_one()


def next_bill_number(db: Session) -> str:
    """Allocate the next bill number inside the caller's transaction (no commit)."""
    row = _sequence_row(db)
    if not row:
        raise SequenceNotInitialized("Bill sequence not initialized")

    # Validate before mutating so a malformed row consumes nothing.
    fiscal_year_code(row.financial_year)

    db.flush()
    number = _increment(db)
    db.expire(row, ["current_number"])

    bill_number = format_bill_number(row.prefix, row.financial_year, number)
    logger.debug(f"Allocated bill number {bill_number}")
    return bill_number


def peek_current_number(db: Session) -> int:
    row = db.query(BillSequence).filter(BillSequence.id == SEQUENCE_ROW_ID).first()
    if not row:
        raise SequenceNotInitialized("Bill sequence not initialized")
    return int(row.current_number or 0)


def initialize_sequence(db: Session, prefix: str, financial_year: str, start_at: int = 0) -> BillSequence:
    """
    Bootstrap the singleton row. Existing rows are left alone unless the
    financial year changed, in which case numbering restarts for the new year.
    """
    fiscal_year_code(financial_year)
    row = db.query(BillSequence).filter(BillSequence.id == SEQUENCE_ROW_ID).first()
    if row is None:
        row = BillSequence(
            id=SEQUENCE_ROW_ID, prefix=prefix, current_number=start_at, financial_year=financial_year
        )
        db.add(row)
        logger.info(f"Bill sequence initialized: prefix={prefix} fy={financial_year}")
    elif row.financial_year != financial_year:
        logger.info(f"Bill sequence rolled over: {row.financial_year} -> {financial_year}")
        row.financial_year = financial_year
        row.prefix = prefix
        row.current_number = start_at
    db.flush()
    return row


class BillSequenceHandle:
    """Explicit handle on the sequence, passed into the billing coordinator."""

    def __init__(self, db: Session):
        self.db = db

    def next(self) -> str:
        return next_bill_number(self.db)

    def current(self) -> int:
        return peek_current_number(self.db)
