"""Billing transaction coordinator: one sale, one unit of work.

A sale walks through SaleStage in order:

    VALIDATING -> CALCULATING -> NUMBERING -> PERSISTING
               -> STOCK_ADJUSTING -> LEDGER_ADJUSTING -> COMMITTED

Everything up to CALCULATING is read-only, so a rejected cart never consumes
a bill number. From NUMBERING on, every write is flushed into the caller's
transaction and nothing here commits; the caller's unit_of_work commits or
rolls back the whole sale.

Also: bill cancellation, sales returns and bill queries.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from medbill.core.exceptions import (
    BatchNotFound,
    BillNotCancellable,
    BillNotFound,
    BillNotReturnable,
    CustomerRequiredForCredit,
    EmptyCart,
    ExpiredBatch,
    InsufficientStock,
    InvalidGstRate,
    InvalidInput,
    InvalidPayment,
    InvalidQuantity,
    PatientInfoRequired,
    ReturnExceedsSold,
)
from medbill.models.batch import Batch
from medbill.models.bill import Bill, BillItem, ScheduledMedicineRecord
from medbill.models.credit import Credit
from medbill.models.enums import (
    BillStatus,
    CreditType,
    PaymentMode,
    PriceType,
    RefundMode,
    RunningBillStatus,
)
from medbill.models.medicine import Medicine
from medbill.models.running_bill import RunningBill
from medbill.models.sales_return import SalesReturn, SalesReturnItem
from medbill.services import inventory_service, ledger_service
from medbill.services.gst_service import (
    ZERO,
    BillCalculation,
    CartLineInput,
    Discount,
    calculate_bill,
    default_hsn_code,
    is_valid_gst_rate,
    money2,
    split_quantity,
)
from medbill.services.inventory_service import ExpiryStatus, expiry_status
from medbill.services.sequence_service import BillSequenceHandle

logger = logging.getLogger(__name__)


class SaleStage(str, Enum):
    VALIDATING = "VALIDATING"
    CALCULATING = "CALCULATING"
    NUMBERING = "NUMBERING"
    PERSISTING = "PERSISTING"
    STOCK_ADJUSTING = "STOCK_ADJUSTING"
    LEDGER_ADJUSTING = "LEDGER_ADJUSTING"
    COMMITTED = "COMMITTED"


# ==============================================================================
# PAYMENT
# ==============================================================================

@dataclass(frozen=True)
class CashPayment:
    pass


@dataclass(frozen=True)
class OnlinePayment:
    pass


@dataclass(frozen=True)
class CreditPayment:
    pass


@dataclass(frozen=True)
class SplitPayment:
    """Cash and online parts; whatever they leave of the final amount goes on credit."""
    cash: Decimal = ZERO
    online: Decimal = ZERO


Payment = Union[CashPayment, OnlinePayment, CreditPayment, SplitPayment]


def payment_mode_of(payment: Payment) -> PaymentMode:
    if isinstance(payment, CashPayment):
        return PaymentMode.CASH
    if isinstance(payment, OnlinePayment):
        return PaymentMode.ONLINE
    if isinstance(payment, CreditPayment):
        return PaymentMode.CREDIT
    if isinstance(payment, SplitPayment):
        return PaymentMode.SPLIT
    raise InvalidPayment(f"Unknown payment type: {type(payment).__name__}")


@dataclass(frozen=True)
class PaymentAllocation:
    mode: PaymentMode
    cash: Decimal
    online: Decimal
    credit: Decimal


def allocate_payment(payment: Payment, final_amount: Decimal) -> PaymentAllocation:
    """Spread the final amount over cash / online / credit. The three parts always sum to it."""
    final_amount = money2(final_amount)
    mode = payment_mode_of(payment)
    if mode == PaymentMode.CASH:
        return PaymentAllocation(mode, final_amount, ZERO, ZERO)
    if mode == PaymentMode.ONLINE:
        return PaymentAllocation(mode, ZERO, final_amount, ZERO)
    if mode == PaymentMode.CREDIT:
        return PaymentAllocation(mode, ZERO, ZERO, final_amount)

    cash = money2(payment.cash)
    online = money2(payment.online)
    if cash < 0 or online < 0:
        raise InvalidPayment("Split payment parts cannot be negative")
    credit = final_amount - cash - online
    if credit < 0:
        raise InvalidPayment(
            f"Split payment ({cash} cash + {online} online) exceeds bill amount {final_amount}"
        )
    return PaymentAllocation(mode, cash, online, money2(credit))


# ==============================================================================
# REQUEST
# ==============================================================================

@dataclass
class PatientInfo:
    """Schedule H/H1 register details."""
    patient_name: str
    patient_age: Optional[int] = None
    patient_gender: Optional[str] = None
    patient_phone: Optional[str] = None
    patient_address: Optional[str] = None
    doctor_name: Optional[str] = None
    doctor_registration_number: Optional[str] = None
    clinic_hospital_name: Optional[str] = None
    prescription_number: Optional[str] = None
    prescription_date: Optional[date] = None


@dataclass
class CartLine:
    """
    One cart row.

    With batch_id: a stocked sale priced from the batch (unit_price overrides
    the batch selling price when given).
    Without batch_id: a running-bill line. medicine_name, unit_price and
    gst_rate come from the operator and pricing is always inclusive.
    """
    quantity: int
    batch_id: Optional[int] = None
    discount: Optional[Discount] = None
    unit_price: Optional[Decimal] = None
    medicine_name: Optional[str] = None
    gst_rate: Optional[Decimal] = None
    hsn_code: Optional[str] = None
    notes: Optional[str] = None
    patient: Optional[PatientInfo] = None

    @property
    def is_running_bill(self) -> bool:
        return self.batch_id is None


@dataclass
class CreateBillRequest:
    items: List[CartLine]
    payment: Payment = field(default_factory=CashPayment)
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    doctor_name: Optional[str] = None
    bill_discount: Optional[Discount] = None
    patient: Optional[PatientInfo] = None
    notes: Optional[str] = None


@dataclass
class ReturnLine:
    bill_item_id: int
    quantity: int


@dataclass
class _ResolvedLine:
    cart: CartLine
    batch: Optional[Batch]
    medicine: Optional[Medicine]
    calc_input: CartLineInput
    patient: Optional[PatientInfo]


@dataclass
class PreparedSale:
    """Output of the read-only stages; nothing has been written yet."""
    lines: List[_ResolvedLine]
    calculation: BillCalculation
    allocation: PaymentAllocation
    customer_name: Optional[str]


# ==============================================================================
# VALIDATING + CALCULATING
# ==============================================================================

def _resolve_stock_line(db: Session, line: CartLine, today: date):
    row = (
        db.query(Batch, Medicine)
        .join(Medicine, Batch.medicine_id == Medicine.id)
        .filter(Batch.id == line.batch_id, Batch.is_active.is_(True), Medicine.is_active.is_(True))
        .first()
    )
    if not row:
        raise BatchNotFound(f"Batch not found: {line.batch_id}")
    batch, medicine = row
    if expiry_status(batch.expiry_date, today, warning_days=0) == ExpiryStatus.EXPIRED:
        raise ExpiredBatch(f"Batch {batch.batch_number} of {medicine.name} expired on {batch.expiry_date}")
    unit_price = line.unit_price if line.unit_price is not None else batch.selling_price
    if money2(unit_price) < 0:
        raise InvalidInput("Unit price cannot be negative")
    calc_input = CartLineInput(
        unit_price=money2(unit_price),
        quantity=int(line.quantity),
        gst_rate=Decimal(str(medicine.gst_rate)),
        price_type=PriceType(batch.price_type),
        discount=line.discount,
        batch_id=batch.id,
    )
    return batch, medicine, calc_input


def _resolve_running_line(line: CartLine) -> CartLineInput:
    if not (line.medicine_name or "").strip():
        raise InvalidInput("Medicine name is required for an item without a batch")
    if line.unit_price is None or money2(line.unit_price) < 0:
        raise InvalidInput(f"A non-negative unit price is required for {line.medicine_name}")
    if line.gst_rate is None or not is_valid_gst_rate(line.gst_rate):
        raise InvalidGstRate(f"GST rate must be 0, 5, 12 or 18 for {line.medicine_name}")
    return CartLineInput(
        unit_price=money2(line.unit_price),
        quantity=int(line.quantity),
        gst_rate=Decimal(str(line.gst_rate)),
        price_type=PriceType.INCLUSIVE,
        discount=line.discount,
        batch_id=None,
    )


def prepare_sale(db: Session, request: CreateBillRequest, today: Optional[date] = None) -> PreparedSale:
    """VALIDATING and CALCULATING. Read-only; also backs the bill preview endpoint."""
    today = today or date.today()
    if not request.items:
        raise EmptyCart("Cart is empty")

    mode = payment_mode_of(request.payment)
    if mode == PaymentMode.CREDIT and request.customer_id is None:
        raise CustomerRequiredForCredit("Select a customer for a credit sale")

    customer_name = request.customer_name
    if request.customer_id is not None:
        customer = ledger_service.get_customer(db, request.customer_id)
        customer_name = customer_name or customer.name

    lines: List[_ResolvedLine] = []
    requested: Dict[int, int] = {}
    for line in request.items:
        if int(line.quantity) <= 0:
            raise InvalidQuantity(f"Quantity must be positive, got {line.quantity}")

        if line.is_running_bill:
            lines.append(_ResolvedLine(line, None, None, _resolve_running_line(line), None))
            continue

        batch, medicine, calc_input = _resolve_stock_line(db, line, today)
        requested[batch.id] = requested.get(batch.id, 0) + int(line.quantity)
        if requested[batch.id] > int(batch.quantity or 0):
            raise InsufficientStock(batch.id, requested[batch.id], int(batch.quantity or 0), name=medicine.name)

        patient = line.patient or request.patient
        if medicine.is_schedule and not (patient and (patient.patient_name or "").strip()):
            raise PatientInfoRequired(f"{medicine.name} is a scheduled drug; patient name is required")
        lines.append(_ResolvedLine(line, batch, medicine, calc_input, patient if medicine.is_schedule else None))

    calculation = calculate_bill([l.calc_input for l in lines], request.bill_discount)
    allocation = allocate_payment(request.payment, calculation.final_amount)
    if allocation.credit > 0 and request.customer_id is None:
        raise CustomerRequiredForCredit(
            f"Split leaves {allocation.credit} on credit; select a customer"
        )
    return PreparedSale(lines, calculation, allocation, customer_name)


# ==============================================================================
# CREATE BILL
# ==============================================================================

def _bill_item_for(resolved: _ResolvedLine, calc) -> BillItem:
    line = resolved.cart
    discount = line.discount
    common = dict(
        quantity=calc.quantity,
        unit_price=calc.unit_price,
        price_type=calc.price_type.value,
        discount_type=discount.type.value if discount else None,
        discount_value=discount.value if discount else ZERO,
        discount_amount=calc.discount_amount,
        fully_discounted=calc.fully_discounted,
        taxable_value=calc.taxable_value,
        gst_rate=calc.gst_rate,
        cgst=calc.cgst,
        sgst=calc.sgst,
        total_gst=calc.total_gst,
        total=calc.total,
        returned_quantity=0,
    )
    if resolved.batch is None:
        return BillItem(
            batch_id=None,
            medicine_id=None,
            medicine_name=line.medicine_name.strip(),
            hsn_code=line.hsn_code or default_hsn_code(calc.gst_rate),
            quantity_strips=0,
            quantity_pieces=calc.quantity,
            tablets_per_strip=1,
            **common,
        )

    batch, medicine = resolved.batch, resolved.medicine
    strips, pieces = split_quantity(calc.quantity, batch.tablets_per_strip)
    return BillItem(
        batch_id=batch.id,
        medicine_id=medicine.id,
        medicine_name=medicine.name,
        hsn_code=medicine.hsn_code,
        batch_number=batch.batch_number,
        expiry_date=batch.expiry_date,
        rack=batch.rack,
        box=batch.box,
        quantity_strips=strips,
        quantity_pieces=pieces,
        tablets_per_strip=int(batch.tablets_per_strip or 1),
        **common,
    )


def _patient_record_for(bill: Bill, item: BillItem, patient: PatientInfo, doctor_name: Optional[str]):
    gender = (patient.patient_gender or "").strip().upper()[:1] or None
    return ScheduledMedicineRecord(
        bill_id=bill.id,
        bill_item_id=item.id,
        medicine_id=item.medicine_id,
        batch_id=item.batch_id,
        patient_name=patient.patient_name.strip(),
        patient_age=patient.patient_age,
        patient_gender=gender,
        patient_phone=patient.patient_phone,
        patient_address=patient.patient_address,
        doctor_name=patient.doctor_name or doctor_name,
        doctor_registration_number=patient.doctor_registration_number,
        clinic_hospital_name=patient.clinic_hospital_name,
        prescription_number=patient.prescription_number,
        prescription_date=patient.prescription_date,
        quantity=item.quantity,
    )


def create_bill(
    db: Session,
    request: CreateBillRequest,
    sequence: Optional[BillSequenceHandle] = None,
    today: Optional[date] = None,
) -> Bill:
    """
    Run one sale through every SaleStage inside the caller's transaction.

    Returns the flushed Bill. The caller commits (unit_of_work / run_with_retry);
    on any exception the caller must roll back.
    """
    today = today or date.today()
    sequence = sequence or BillSequenceHandle(db)
    stage = SaleStage.VALIDATING
    try:
        prepared = prepare_sale(db, request, today)
        stage = SaleStage.CALCULATING
        calc = prepared.calculation
        allocation = prepared.allocation

        stage = SaleStage.NUMBERING
        bill_number = sequence.next()

        stage = SaleStage.PERSISTING
        bill_discount = request.bill_discount
        bill = Bill(
            bill_number=bill_number,
            bill_date=datetime.now(),
            customer_id=request.customer_id,
            customer_name=prepared.customer_name,
            doctor_name=request.doctor_name,
            subtotal=calc.subtotal,
            item_discount_total=calc.item_discount_total,
            discount_type=bill_discount.type.value if bill_discount else None,
            discount_value=bill_discount.value if bill_discount else ZERO,
            discount_amount=calc.bill_discount,
            taxable_total=calc.taxable_total,
            total_cgst=calc.total_cgst,
            total_sgst=calc.total_sgst,
            total_gst=calc.total_gst,
            grand_total=calc.final_amount,
            round_off=calc.round_off,
            payment_mode=allocation.mode.value,
            cash_amount=allocation.cash,
            online_amount=allocation.online,
            credit_amount=allocation.credit,
            status=BillStatus.COMPLETED.value,
            notes=request.notes,
            total_items=len(prepared.lines),
        )
        db.add(bill)
        db.flush()

        items: List[BillItem] = []
        for resolved, item_calc in zip(prepared.lines, calc.items):
            item = _bill_item_for(resolved, item_calc)
            bill.items.append(item)
            items.append(item)
        db.flush()

        for resolved, item in zip(prepared.lines, items):
            if resolved.patient is not None:
                db.add(_patient_record_for(bill, item, resolved.patient, request.doctor_name))
            if resolved.batch is None:
                db.add(
                    RunningBill(
                        bill_id=bill.id,
                        bill_item_id=item.id,
                        medicine_name=item.medicine_name,
                        quantity=item.quantity,
                        unit_price=item.unit_price,
                        total_amount=item.total,
                        gst_rate=item.gst_rate,
                        hsn_code=item.hsn_code,
                        notes=resolved.cart.notes,
                        status=RunningBillStatus.PENDING.value,
                        deducted=False,
                    )
                )
        db.flush()

        stage = SaleStage.STOCK_ADJUSTING
        for item in items:
            if item.batch_id is not None:
                inventory_service.deduct(db, item.batch_id, item.quantity, sold_on=today)

        stage = SaleStage.LEDGER_ADJUSTING
        if allocation.credit > 0:
            ledger_service.append_entry(
                db,
                request.customer_id,
                CreditType.SALE,
                allocation.credit,
                bill_id=bill.id,
                payment_mode=allocation.mode.value,
                reference=bill_number,
                notes=f"Credit sale {bill_number}",
            )

        stage = SaleStage.COMMITTED
    except Exception as e:
        logger.warning(f"Sale aborted at {stage.value}: {e}")
        raise

    logger.info(
        f"Bill {bill.bill_number}: {len(items)} items, total {bill.grand_total} ({bill.payment_mode})"
    )
    return bill


def preview_bill(db: Session, request: CreateBillRequest, today: Optional[date] = None) -> PreparedSale:
    """Totals for the till screen without writing anything."""
    return prepare_sale(db, request, today)


# ==============================================================================
# QUERIES
# ==============================================================================

def get_bill(db: Session, bill_id: int) -> Bill:
    bill = db.query(Bill).filter(Bill.id == bill_id).first()
    if not bill:
        raise BillNotFound(f"Bill not found: {bill_id}")
    return bill


def get_bill_by_number(db: Session, bill_number: str) -> Bill:
    bill = db.query(Bill).filter(Bill.bill_number == bill_number).first()
    if not bill:
        raise BillNotFound(f"Bill not found: {bill_number}")
    return bill


def _date_bounds(query, start_date: Optional[date], end_date: Optional[date]):
    if start_date:
        query = query.filter(Bill.bill_date >= datetime.combine(start_date, time.min))
    if end_date:
        query = query.filter(Bill.bill_date < datetime.combine(end_date + timedelta(days=1), time.min))
    return query


def list_bills(
    db: Session,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    customer_id: Optional[int] = None,
    payment_mode: Optional[PaymentMode] = None,
    status: Optional[BillStatus] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[Bill]:
    q = _date_bounds(db.query(Bill), start_date, end_date)
    if customer_id is not None:
        q = q.filter(Bill.customer_id == customer_id)
    if payment_mode is not None:
        q = q.filter(Bill.payment_mode == PaymentMode(payment_mode).value)
    if status is not None:
        q = q.filter(Bill.status == BillStatus(status).value)
    return q.order_by(Bill.id.desc()).offset(offset).limit(limit).all()


def sales_summary(db: Session, start_date: Optional[date] = None, end_date: Optional[date] = None) -> dict:
    """Totals over non-cancelled bills in the range, overall and per payment mode."""
    q = _date_bounds(db.query(Bill), start_date, end_date).filter(
        Bill.status != BillStatus.CANCELLED.value
    )
    bills = q.all()

    by_mode = {m.value: {"count": 0, "total": ZERO} for m in PaymentMode}
    totals = {
        "bill_count": 0,
        "gross_sales": ZERO,
        "total_gst": ZERO,
        "total_discount": ZERO,
        "cash_collected": ZERO,
        "online_collected": ZERO,
        "credit_given": ZERO,
    }
    for bill in bills:
        totals["bill_count"] += 1
        totals["gross_sales"] += money2(bill.grand_total)
        totals["total_gst"] += money2(bill.total_gst)
        totals["total_discount"] += money2(bill.discount_amount) + money2(bill.item_discount_total)
        totals["cash_collected"] += money2(bill.cash_amount)
        totals["online_collected"] += money2(bill.online_amount)
        totals["credit_given"] += money2(bill.credit_amount)
        by_mode[bill.payment_mode]["count"] += 1
        by_mode[bill.payment_mode]["total"] += money2(bill.grand_total)

    returns_q = db.query(func.coalesce(func.sum(SalesReturn.total_amount), 0)).join(
        Bill, SalesReturn.bill_id == Bill.id
    )
    returns_total = money2(_date_bounds(returns_q, start_date, end_date).scalar())

    totals = {k: (money2(v) if isinstance(v, Decimal) else v) for k, v in totals.items()}
    totals["returns_total"] = returns_total
    totals["net_sales"] = money2(totals["gross_sales"] - returns_total)
    totals["by_payment_mode"] = by_mode
    totals["start_date"] = start_date
    totals["end_date"] = end_date
    return totals


# ==============================================================================
# CANCELLATION
# ==============================================================================

def outstanding_bill_credit(db: Session, bill_id: int) -> Decimal:
    total = db.query(func.coalesce(func.sum(Credit.amount), 0)).filter(Credit.bill_id == bill_id).scalar()
    return money2(total)


def cancel_bill(db: Session, bill_id: int, reason: Optional[str] = None) -> Bill:
    """
    Void a COMPLETED bill: stock that is still out goes back, outstanding credit
    is reversed and pending running bills are dropped. The bill row stays.
    """
    bill = get_bill(db, bill_id)
    if bill.status != BillStatus.COMPLETED.value:
        raise BillNotCancellable(f"Bill {bill.bill_number} is {bill.status}; only COMPLETED bills can be cancelled")

    for item in bill.items:
        outstanding = int(item.quantity) - int(item.returned_quantity or 0)
        if item.batch_id is not None and outstanding > 0:
            inventory_service.restore(db, item.batch_id, outstanding)

    now = datetime.now()
    pending = (
        db.query(RunningBill)
        .filter(RunningBill.bill_id == bill.id, RunningBill.status == RunningBillStatus.PENDING.value)
        .all()
    )
    for rb in pending:
        rb.status = RunningBillStatus.CANCELLED.value
        rb.cancelled_at = now

    if bill.customer_id is not None:
        owed = outstanding_bill_credit(db, bill.id)
        if owed > 0:
            ledger_service.append_entry(
                db,
                bill.customer_id,
                CreditType.ADJUSTMENT,
                -owed,
                bill_id=bill.id,
                reference=bill.bill_number,
                notes=f"Bill {bill.bill_number} cancelled",
            )

    bill.status = BillStatus.CANCELLED.value
    if reason:
        bill.notes = f"{bill.notes}\nCancelled: {reason}" if bill.notes else f"Cancelled: {reason}"
    db.flush()
    logger.info(f"Cancelled bill {bill.bill_number}")
    return bill


# ==============================================================================
# SALES RETURNS
# ==============================================================================

def _next_return_number(db: Session, bill: Bill) -> str:
    count = db.query(func.count(SalesReturn.id)).filter(SalesReturn.bill_id == bill.id).scalar() or 0
    return f"SR-{bill.bill_number}-{count + 1:02d}"


def _share(amount, part: int, whole: int) -> Decimal:
    return money2(Decimal(str(amount)) * part / whole)


def _refunded_so_far(db: Session, bill_item_id: int):
    """(cgst, total) already refunded against one bill line."""
    cgst, total = (
        db.query(
            func.coalesce(func.sum(SalesReturnItem.cgst), 0),
            func.coalesce(func.sum(SalesReturnItem.total), 0),
        )
        .filter(SalesReturnItem.bill_item_id == bill_item_id)
        .one()
    )
    return money2(cgst), money2(total)


def create_sales_return(
    db: Session,
    bill_id: int,
    lines: List[ReturnLine],
    refund_mode: RefundMode = RefundMode.CASH,
    reason: Optional[str] = None,
) -> SalesReturn:
    """
    Take goods back against a bill. Stock is restored to the original batch and
    the refund is valued pro rata from the sold line (tax included).
    """
    bill = get_bill(db, bill_id)
    if bill.status != BillStatus.COMPLETED.value:
        raise BillNotReturnable(f"Bill {bill.bill_number} is {bill.status}")
    if not lines:
        raise EmptyCart("Nothing to return")
    refund_mode = RefundMode(refund_mode)

    items_by_id = {item.id: item for item in bill.items}
    requested: Dict[int, int] = {}
    for line in lines:
        item = items_by_id.get(line.bill_item_id)
        if item is None:
            raise InvalidInput(f"Item {line.bill_item_id} is not on bill {bill.bill_number}")
        if int(line.quantity) <= 0:
            raise InvalidQuantity(f"Return quantity must be positive, got {line.quantity}")
        if item.batch_id is None:
            raise InvalidInput(f"{item.medicine_name} has not been stocked yet and cannot be returned")
        requested[item.id] = requested.get(item.id, 0) + int(line.quantity)
        returnable = int(item.quantity) - int(item.returned_quantity or 0)
        if requested[item.id] > returnable:
            raise ReturnExceedsSold(
                f"Cannot return {requested[item.id]} of {item.medicine_name}; only {returnable} returnable"
            )

    sales_return = SalesReturn(
        return_number=_next_return_number(db, bill),
        bill_id=bill.id,
        customer_id=bill.customer_id,
        reason=reason,
        refund_mode=refund_mode.value,
    )
    db.add(sales_return)

    total_amount = ZERO
    total_gst = ZERO
    for item_id, qty in requested.items():
        item = items_by_id[item_id]
        if int(item.returned_quantity or 0) + qty == int(item.quantity):
            # Last slice takes the remainder: a fully returned line refunds exactly item.total.
            cgst_done, total_done = _refunded_so_far(db, item.id)
            cgst = money2(item.cgst - cgst_done)
            line_total = money2(item.total - total_done)
        else:
            cgst = _share(item.cgst, qty, item.quantity)
            line_total = _share(item.total, qty, item.quantity)
        sales_return.items.append(
            SalesReturnItem(
                bill_item_id=item.id,
                batch_id=item.batch_id,
                quantity=qty,
                unit_price=item.unit_price,
                gst_rate=item.gst_rate,
                cgst=cgst,
                sgst=cgst,
                total=line_total,
            )
        )
        inventory_service.restore(db, item.batch_id, qty)
        item.returned_quantity = int(item.returned_quantity or 0) + qty
        total_amount += line_total
        total_gst += cgst * 2

    sales_return.total_amount = money2(total_amount)
    sales_return.total_gst = money2(total_gst)
    db.flush()

    if refund_mode == RefundMode.CREDIT_NOTE and bill.customer_id is not None:
        ledger_service.append_entry(
            db,
            bill.customer_id,
            CreditType.RETURN,
            sales_return.total_amount,
            bill_id=bill.id,
            reference=sales_return.return_number,
            notes=reason,
        )

    if all(int(i.returned_quantity or 0) >= int(i.quantity) for i in bill.items):
        bill.status = BillStatus.RETURNED.value
    db.flush()
    logger.info(f"Sales return {sales_return.return_number}: {sales_return.total_amount}")
    return sales_return
