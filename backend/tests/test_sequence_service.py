"""Bill numbering: format, monotonicity, fiscal-year rollover and missing setup."""
import threading
from datetime import date, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from medbill.core.config import current_financial_year
from medbill.core.exceptions import SequenceNotInitialized
from medbill.db.base import Base
from medbill.db.session import build_engine, run_with_retry, unit_of_work
from medbill.models.bill_sequence import BillSequence
from medbill.services import billing_service, inventory_service, sequence_service
from medbill.services.billing_service import CartLine, CreateBillRequest
from medbill.services.sequence_service import (
    BillSequenceHandle,
    fiscal_year_code,
    format_bill_number,
    initialize_sequence,
    next_bill_number,
    peek_current_number,
)


def test_fiscal_year_code_variants():
    assert fiscal_year_code("2024-25") == "2425"
    assert fiscal_year_code("2024-2025") == "2425"
    assert fiscal_year_code("24/25") == "2425"
    with pytest.raises(SequenceNotInitialized):
        fiscal_year_code("FY24")


def test_format():
    assert format_bill_number("INV", "2024-25", 1) == "INV-2425-00001"
    assert format_bill_number("MED", "2025-26", 12345) == "MED-2526-12345"


def test_financial_year_for_date():
    assert current_financial_year(date(2025, 3, 31)) == "2024-25"
    assert current_financial_year(date(2025, 4, 1)) == "2025-26"


def test_numbers_are_sequential(db):
    handle = BillSequenceHandle(db)
    numbers = [handle.next() for _ in range(3)]
    assert numbers == ["INV-2425-00001", "INV-2425-00002", "INV-2425-00003"]
    assert handle.current() == 3


def test_rollback_consumes_nothing(db):
    next_bill_number(db)
    db.rollback()
    assert peek_current_number(db) == 0
    assert next_bill_number(db) == "INV-2425-00001"


def test_initialize_keeps_existing_counter(db):
    next_bill_number(db)
    db.commit()
    initialize_sequence(db, "INV", "2024-25")
    assert peek_current_number(db) == 1


def test_new_fiscal_year_restarts_numbering(db):
    next_bill_number(db)
    next_bill_number(db)
    initialize_sequence(db, "INV", "2025-26")
    assert next_bill_number(db) == "INV-2526-00001"


def test_missing_row_raises(session_factory):
    session = session_factory()
    try:
        with pytest.raises(SequenceNotInitialized):
            next_bill_number(session)
    finally:
        session.close()


def test_malformed_year_consumes_nothing(db):
    row = db.query(BillSequence).one()
    row.financial_year = "bogus"
    db.flush()
    with pytest.raises(SequenceNotInitialized):
        next_bill_number(db)
    assert row.current_number == 0


def test_concurrent_sales_get_consecutive_numbers(tmp_path, monkeypatch):
    """Two tills read the counter at the same moment; both sales still commit."""
    engine = build_engine(f"sqlite:///{tmp_path / 'till.db'}")
    Base.metadata.create_all(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    with unit_of_work(factory) as session:
        initialize_sequence(session, "INV", "2024-25")
        med = inventory_service.create_medicine(session, name="Paracetamol 500mg", gst_rate=12)
        batch_id = inventory_service.create_batch(
            session, med.id, "B001", date.today() + timedelta(days=365), "32.00", quantity=100
        )

    barrier = threading.Barrier(2)
    read_once = set()
    real_read = sequence_service._sequence_row

    def read_then_wait(db):
        row = real_read(db)
        name = threading.current_thread().name
        if name not in read_once:
            read_once.add(name)
            barrier.wait(timeout=5)
        return row

    monkeypatch.setattr(sequence_service, "_sequence_row", read_then_wait)

    results = {}

    def sell(name):
        request = CreateBillRequest(items=[CartLine(quantity=1, batch_id=batch_id)])
        try:
            results[name] = run_with_retry(
                lambda s: billing_service.create_bill(s, request).bill_number, factory, backoff=0
            )
        except Exception as e:
            results[name] = repr(e)

    threads = [threading.Thread(target=sell, args=(name,), name=name) for name in ("A", "B")]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    try:
        assert sorted(results.values()) == ["INV-2425-00001", "INV-2425-00002"]
        session = factory()
        try:
            assert peek_current_number(session) == 2
            assert inventory_service.available_quantity(session, batch_id) == 98
        finally:
            session.close()
    finally:
        engine.dispose()
