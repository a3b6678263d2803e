"""Running bills: sold before stocked, then linked to a batch or cancelled."""
from decimal import Decimal

import pytest

from medbill.core.exceptions import (
    BatchRequiredForDeduction,
    InsufficientStock,
    InvalidGstRate,
    InvalidInput,
    InvalidRunningBillTransition,
    RunningBillNotFound,
)
from medbill.models.enums import BillStatus, RunningBillStatus
from medbill.services import billing_service, inventory_service, running_bill_service
from medbill.services.billing_service import CartLine, CreateBillRequest
from medbill.services.running_bill_service import StockedWithDeduction, StockedWithoutDeduction


def _sell_unstocked(db, quantity=20, unit_price="15.00"):
    line = CartLine(
        quantity=quantity,
        medicine_name="Azithral 500",
        unit_price=Decimal(unit_price),
        gst_rate=Decimal("12"),
        notes="Supplier delivers tomorrow",
    )
    bill = billing_service.create_bill(db, CreateBillRequest(items=[line]))
    rb = running_bill_service.list_running_bills(db, bill_id=bill.id)[0]
    return bill, rb


def test_sale_without_batch_creates_pending_running_bill(db):
    bill, rb = _sell_unstocked(db)
    item = bill.items[0]

    assert rb.status == RunningBillStatus.PENDING.value
    assert rb.total_amount == Decimal("300.00")
    assert rb.bill_item_id == item.id
    assert item.batch_id is None
    assert item.total == Decimal("300.00")
    assert item.taxable_value == Decimal("267.86")
    assert item.cgst == Decimal("16.07")
    assert bill.grand_total == Decimal("300.00")


def test_link_with_deduction(db, make_batch):
    batch_id = make_batch(name="Azithral 500", quantity=600)
    bill, rb = _sell_unstocked(db)

    outcome = running_bill_service.link_running_bill_to_stock(db, rb.id, batch_id=batch_id, linked_by="counter-1")

    assert outcome == StockedWithDeduction(batch_id)
    assert inventory_service.available_quantity(db, batch_id) == 580
    assert rb.status == RunningBillStatus.STOCKED.value
    assert rb.deducted
    assert rb.linked_batch_id == batch_id
    assert rb.stocked_by == "counter-1"
    assert rb.stocked_at is not None

    item = bill.items[0]
    assert item.batch_id == batch_id
    assert item.batch_number == "B001"
    assert (item.quantity_strips, item.quantity_pieces) == (2, 0)


def test_link_without_deduction_leaves_stock(db, make_batch):
    batch_id = make_batch(quantity=600)
    bill, rb = _sell_unstocked(db)

    outcome = running_bill_service.link_running_bill_to_stock(db, rb.id, batch_id=batch_id, deduct=False)
    assert outcome == StockedWithoutDeduction(batch_id)
    assert inventory_service.available_quantity(db, batch_id) == 600
    assert rb.status == RunningBillStatus.STOCKED.value
    assert not rb.deducted
    assert bill.items[0].batch_id is None

    _, other = _sell_unstocked(db)
    assert running_bill_service.link_running_bill_to_stock(db, other.id, deduct=False) == StockedWithoutDeduction()


def test_deduction_needs_a_batch_with_stock(db, make_batch):
    small = make_batch(quantity=5)
    _, rb = _sell_unstocked(db)

    with pytest.raises(BatchRequiredForDeduction):
        running_bill_service.link_running_bill_to_stock(db, rb.id)
    with pytest.raises(InsufficientStock):
        running_bill_service.link_running_bill_to_stock(db, rb.id, batch_id=small)
    assert rb.status == RunningBillStatus.PENDING.value
    assert inventory_service.available_quantity(db, small) == 5


def test_terminal_states_reject_transitions(db, make_batch):
    batch_id = make_batch(quantity=600)
    _, stocked = _sell_unstocked(db)
    _, cancelled = _sell_unstocked(db)

    running_bill_service.link_running_bill_to_stock(db, stocked.id, batch_id=batch_id)
    running_bill_service.cancel_running_bill(db, cancelled.id)
    assert cancelled.status == RunningBillStatus.CANCELLED.value
    assert cancelled.cancelled_at is not None

    with pytest.raises(InvalidRunningBillTransition):
        running_bill_service.cancel_running_bill(db, stocked.id)
    with pytest.raises(InvalidRunningBillTransition):
        running_bill_service.link_running_bill_to_stock(db, cancelled.id, batch_id=batch_id)
    with pytest.raises(RunningBillNotFound):
        running_bill_service.cancel_running_bill(db, 9999)

    assert [r.id for r in running_bill_service.list_running_bills(db, status=RunningBillStatus.PENDING)] == []
    assert inventory_service.available_quantity(db, batch_id) == 580


def test_cancel_running_bill_keeps_bill(db):
    bill, rb = _sell_unstocked(db)
    running_bill_service.cancel_running_bill(db, rb.id)
    assert bill.status == BillStatus.COMPLETED.value
    assert bill.grand_total == Decimal("300.00")


def test_cancel_bill_drops_pending_running_bills(db):
    bill, rb = _sell_unstocked(db)
    billing_service.cancel_bill(db, bill.id)
    assert rb.status == RunningBillStatus.CANCELLED.value


def test_running_line_validation(db):
    with pytest.raises(InvalidInput):
        billing_service.create_bill(db, CreateBillRequest(items=[CartLine(quantity=1, unit_price=Decimal("5"), gst_rate=Decimal("12"))]))
    with pytest.raises(InvalidInput):
        billing_service.create_bill(db, CreateBillRequest(items=[CartLine(quantity=1, medicine_name="X", gst_rate=Decimal("12"))]))
    with pytest.raises(InvalidGstRate):
        billing_service.create_bill(db, CreateBillRequest(items=[CartLine(quantity=1, medicine_name="X", unit_price=Decimal("5"))]))
