"""Credit ledger: signed entries, materialised balance and fold equality."""
from decimal import Decimal

import pytest

from medbill.core.exceptions import CustomerNotFound, InvalidInput, InvalidPayment
from medbill.models.enums import CreditType, PaymentMode
from medbill.services import ledger_service


def test_entries_move_balance(db, customer):
    assert ledger_service.append_entry(db, customer.id, CreditType.SALE, "500") == Decimal("500.00")
    assert ledger_service.record_payment(db, customer.id, "200", PaymentMode.ONLINE) == Decimal("300.00")
    assert ledger_service.append_entry(db, customer.id, CreditType.RETURN, "50") == Decimal("250.00")
    assert ledger_service.append_entry(db, customer.id, CreditType.ADJUSTMENT, "-25.50") == Decimal("224.50")

    entries = ledger_service.list_entries(db, customer.id)
    assert [e.amount for e in entries] == [
        Decimal("500.00"), Decimal("-200.00"), Decimal("-50.00"), Decimal("-25.50"),
    ]
    assert entries[-1].balance_after == Decimal("224.50")
    assert customer.current_balance == Decimal("224.50")
    assert ledger_service.recompute_balance(db, customer.id) == Decimal("224.50")
    assert ledger_service.verify_balance(db, customer.id)


def test_payment_validation(db, customer):
    with pytest.raises(InvalidPayment):
        ledger_service.record_payment(db, customer.id, "0")
    with pytest.raises(InvalidPayment):
        ledger_service.record_payment(db, customer.id, "10", PaymentMode.CREDIT)
    with pytest.raises(InvalidPayment):
        ledger_service.append_entry(db, customer.id, CreditType.SALE, "-5")
    with pytest.raises(CustomerNotFound):
        ledger_service.record_payment(db, 9999, "10")


def test_overpayment_leaves_advance(db, customer):
    ledger_service.append_entry(db, customer.id, CreditType.SALE, "100")
    assert ledger_service.record_payment(db, customer.id, "150") == Decimal("-50.00")
    assert ledger_service.verify_balance(db, customer.id)


def test_tampered_balance_is_detected(db, customer):
    ledger_service.append_entry(db, customer.id, CreditType.SALE, "100")
    customer.current_balance = Decimal("90")
    db.flush()
    assert not ledger_service.verify_balance(db, customer.id)


def test_customer_name_is_cleaned(db):
    c = ledger_service.create_customer(db, "  Sita   Devi <script> ")
    assert c.name == "Sita Devi script"
    with pytest.raises(InvalidInput):
        ledger_service.create_customer(db, "!")
