"""Unit of work and transient-lock retries."""
import pytest
from sqlalchemy.exc import OperationalError

from medbill.core.exceptions import BusinessError, EmptyCart, SequenceNotInitialized, StorageUnavailable
from medbill.db.session import is_transient, run_with_retry, unit_of_work
from medbill.models.customer import Customer


def _locked():
    return OperationalError("UPDATE bill_sequence", {}, Exception("database is locked"))


def test_unit_of_work_commits_and_rolls_back(session_factory, db):
    with unit_of_work(session_factory) as session:
        session.add(Customer(name="Committed", current_balance=0))

    with pytest.raises(RuntimeError):
        with unit_of_work(session_factory) as session:
            session.add(Customer(name="Rolled Back", current_balance=0))
            session.flush()
            raise RuntimeError("boom")

    assert [c.name for c in db.query(Customer).all()] == ["Committed"]


def test_transient_errors_are_retried_then_surface(session_factory):
    calls = []

    def work(session):
        calls.append(1)
        raise _locked()

    with pytest.raises(StorageUnavailable) as exc:
        run_with_retry(work, session_factory, attempts=3, backoff=0)
    assert len(calls) == 3
    assert exc.value.retryable


def test_retry_succeeds_after_contention(session_factory):
    calls = []

    def work(session):
        calls.append(1)
        if len(calls) < 2:
            raise _locked()
        return "ok"

    assert run_with_retry(work, session_factory, attempts=3, backoff=0) == "ok"
    assert len(calls) == 2


def test_business_errors_are_not_retried(session_factory):
    calls = []

    def work(session):
        calls.append(1)
        raise EmptyCart("Cart is empty")

    with pytest.raises(EmptyCart):
        run_with_retry(work, session_factory, attempts=3, backoff=0)
    assert len(calls) == 1

    other = OperationalError("SELECT 1", {}, Exception("no such table: bills"))
    assert not is_transient(other)
    assert is_transient(_locked())


def test_setup_errors_are_not_leaked():
    http_exc = BusinessError.from_billing_error(SequenceNotInitialized("row 1 missing from bill_sequence"))
    assert http_exc.status_code == 500
    assert "bill_sequence" not in http_exc.detail["detail"]
    assert http_exc.detail["error"] == "SEQUENCE_NOT_INITIALIZED"
