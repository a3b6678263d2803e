"""Running bills: sold before stocked.

PENDING -> STOCKED    (link_running_bill_to_stock, with or without deduction)
PENDING -> CANCELLED  (cancel_running_bill)

STOCKED and CANCELLED are terminal. The bill itself is never modified here
except for binding the placeholder BillItem to the batch it was deducted from.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from medbill.core.exceptions import (
    BatchRequiredForDeduction,
    InvalidRunningBillTransition,
    RunningBillNotFound,
)
from medbill.models.bill import BillItem
from medbill.models.enums import RunningBillStatus
from medbill.models.running_bill import RunningBill
from medbill.services import inventory_service
from medbill.services.gst_service import split_quantity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockedWithDeduction:
    batch_id: int


@dataclass(frozen=True)
class StockedWithoutDeduction:
    batch_id: Optional[int] = None


StockingOutcome = Union[StockedWithDeduction, StockedWithoutDeduction]


def get_running_bill(db: Session, running_bill_id: int) -> RunningBill:
    rb = db.query(RunningBill).filter(RunningBill.id == running_bill_id).first()
    if not rb:
        raise RunningBillNotFound(f"Running bill not found: {running_bill_id}")
    return rb


def _require_pending(rb: RunningBill, target: RunningBillStatus) -> None:
    if rb.status != RunningBillStatus.PENDING.value:
        raise InvalidRunningBillTransition(
            f"Running bill {rb.id} is {rb.status}; cannot move to {target.value}"
        )


def _bind_placeholder(item: BillItem, batch) -> None:
    """Point the placeholder line at the real batch so returns and cancellation see it."""
    medicine = batch.medicine
    strips, pieces = split_quantity(item.quantity, batch.tablets_per_strip)
    item.batch_id = batch.id
    item.medicine_id = medicine.id
    item.batch_number = batch.batch_number
    item.expiry_date = batch.expiry_date
    item.rack = batch.rack
    item.box = batch.box
    item.tablets_per_strip = int(batch.tablets_per_strip or 1)
    item.quantity_strips = strips
    item.quantity_pieces = pieces


def link_running_bill_to_stock(
    db: Session,
    running_bill_id: int,
    batch_id: Optional[int] = None,
    deduct: bool = True,
    linked_by: Optional[str] = None,
    today: Optional[date] = None,
) -> StockingOutcome:
    """
    Reconcile a running bill against stock that has now arrived.

    deduct=True: batch required, its quantity is decremented and the
    placeholder BillItem is bound to it.
    deduct=False: inventory is left alone (stock was already adjusted by
    hand); the batch, if given, is recorded for reference.
    """
    rb = get_running_bill(db, running_bill_id)
    _require_pending(rb, RunningBillStatus.STOCKED)

    batch = None
    if batch_id is not None:
        batch = inventory_service.get_batch(db, batch_id)
    elif deduct:
        raise BatchRequiredForDeduction(f"Running bill {rb.id}: select a batch to deduct from")

    if deduct:
        inventory_service.deduct(db, batch.id, rb.quantity, sold_on=today)
        if rb.bill_item is not None:
            _bind_placeholder(rb.bill_item, batch)
        outcome: StockingOutcome = StockedWithDeduction(batch.id)
    else:
        outcome = StockedWithoutDeduction(batch.id if batch else None)

    rb.status = RunningBillStatus.STOCKED.value
    rb.deducted = bool(deduct)
    rb.linked_batch_id = batch.id if batch else None
    rb.linked_medicine_id = batch.medicine_id if batch else None
    rb.stocked_at = datetime.now()
    rb.stocked_by = linked_by
    db.flush()
    logger.info(f"Running bill {rb.id} stocked ({type(outcome).__name__}, batch={rb.linked_batch_id})")
    return outcome


def cancel_running_bill(db: Session, running_bill_id: int) -> RunningBill:
    """Drop the stock obligation. The bill stays a valid financial record."""
    rb = get_running_bill(db, running_bill_id)
    _require_pending(rb, RunningBillStatus.CANCELLED)
    rb.status = RunningBillStatus.CANCELLED.value
    rb.cancelled_at = datetime.now()
    db.flush()
    logger.info(f"Running bill {rb.id} cancelled")
    return rb


def list_running_bills(
    db: Session,
    status: Optional[RunningBillStatus] = None,
    bill_id: Optional[int] = None,
) -> List[RunningBill]:
    q = db.query(RunningBill)
    if status is not None:
        q = q.filter(RunningBill.status == RunningBillStatus(status).value)
    if bill_id is not None:
        q = q.filter(RunningBill.bill_id == bill_id)
    return q.order_by(RunningBill.id.asc()).all()
