"""Customer credit ledger. Used by the billing coordinator, returns and payment capture.

INVARIANT:
Customer.current_balance == SUM(credits.amount) for that customer.
append_entry is the only writer of current_balance; it inserts the entry and
moves the balance in the same flush, inside the caller's transaction.
"""
import logging
import re
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from medbill.core.exceptions import CustomerNotFound, InvalidInput, InvalidPayment
from medbill.models.credit import Credit
from medbill.models.customer import Customer
from medbill.models.enums import CreditType, PaymentMode
from medbill.services.gst_service import money2

logger = logging.getLogger(__name__)


def sanitize_customer_name(name: str) -> str:
    """Collapse whitespace, strip markup-ish characters, cap at 100 chars."""
    if not name:
        raise InvalidInput("Customer name cannot be empty")
    name = " ".join(name.strip().split())
    name = re.sub(r"[^\w\s\-'.&]", "", name)
    name = name[:100].strip()
    if len(name) < 2:
        raise InvalidInput("Customer name must be at least 2 characters")
    return name


def create_customer(
    db: Session,
    name: str,
    phone: str | None = None,
    email: str | None = None,
    address: str | None = None,
    gstin: str | None = None,
    credit_limit=0,
) -> Customer:
    customer = Customer(
        name=sanitize_customer_name(name),
        phone=phone,
        email=email,
        address=address,
        gstin=gstin,
        credit_limit=money2(credit_limit),
        current_balance=Decimal("0.00"),
        is_active=True,
    )
    db.add(customer)
    db.flush()
    logger.info(f"Created customer {customer.id}: {customer.name}")
    return customer


def get_customer(db: Session, customer_id: int) -> Customer:
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if not customer:
        raise CustomerNotFound(f"Customer not found: {customer_id}")
    return customer


def signed_amount(transaction_type: CreditType, amount) -> Decimal:
    """
    SALE adds to what the customer owes; PAYMENT and RETURN reduce it.
    ADJUSTMENT keeps the sign the caller gives it.
    """
    amount = money2(amount)
    transaction_type = CreditType(transaction_type)
    if transaction_type == CreditType.ADJUSTMENT:
        return amount
    if amount < 0:
        raise InvalidPayment(f"{transaction_type.value} amount must not be negative")
    if transaction_type in (CreditType.PAYMENT, CreditType.RETURN):
        return -amount
    return amount


def append_entry(
    db: Session,
    customer_id: int,
    transaction_type: CreditType,
    amount,
    bill_id: Optional[int] = None,
    payment_mode: Optional[str] = None,
    reference: Optional[str] = None,
    notes: Optional[str] = None,
) -> Decimal:
    """Insert a ledger entry and move the customer's balance. Returns balance_after."""
    customer = get_customer(db, customer_id)
    db.refresh(customer)
    delta = signed_amount(transaction_type, amount)
    balance_after = money2(Decimal(str(customer.current_balance or 0)) + delta)

    entry = Credit(
        customer_id=customer_id,
        bill_id=bill_id,
        transaction_type=CreditType(transaction_type).value,
        amount=delta,
        balance_after=balance_after,
        payment_mode=payment_mode,
        reference=reference,
        notes=notes,
    )
    db.add(entry)
    customer.current_balance = balance_after
    db.flush()
    logger.info(
        f"Ledger {entry.transaction_type} for customer {customer_id}: {delta:+} -> balance {balance_after}"
    )
    return balance_after


def record_payment(
    db: Session,
    customer_id: int,
    amount,
    mode: PaymentMode = PaymentMode.CASH,
    reference: Optional[str] = None,
    notes: Optional[str] = None,
) -> Decimal:
    """Customer settles (part of) their udhar."""
    amount = money2(amount)
    if amount <= 0:
        raise InvalidPayment("Payment amount must be positive")
    mode = PaymentMode(mode)
    if mode in (PaymentMode.CREDIT, PaymentMode.SPLIT):
        raise InvalidPayment(f"Payments are received as CASH or ONLINE, not {mode.value}")
    return append_entry(
        db,
        customer_id,
        CreditType.PAYMENT,
        amount,
        payment_mode=mode.value,
        reference=reference,
        notes=notes,
    )


def list_entries(db: Session, customer_id: int) -> List[Credit]:
    get_customer(db, customer_id)
    return (
        db.query(Credit)
        .filter(Credit.customer_id == customer_id)
        .order_by(Credit.id.asc())
        .all()
    )


def recompute_balance(db: Session, customer_id: int) -> Decimal:
    """Fold over the log."""
    total = db.query(func.coalesce(func.sum(Credit.amount), 0)).filter(
        Credit.customer_id == customer_id
    ).scalar()
    return money2(total)


def verify_balance(db: Session, customer_id: int) -> bool:
    customer = get_customer(db, customer_id)
    folded = recompute_balance(db, customer_id)
    ok = money2(customer.current_balance) == folded
    if not ok:
        logger.error(
            f"Ledger mismatch for customer {customer_id}: stored={customer.current_balance} folded={folded}"
        )
    return ok
