"""Customers and their udhar ledger."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from medbill.api.deps import get_db, get_session_factory
from medbill.core.audit import AuditLog
from medbill.db.session import run_with_retry
from medbill.schemas.customer import (
    CreditEntryResponse,
    CreditPaymentCreate,
    CreditPaymentResponse,
    CustomerCreate,
    CustomerResponse,
    LedgerResponse,
)
from medbill.services import ledger_service

router = APIRouter()


@router.post("", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
def create_customer(payload: CustomerCreate, db: Session = Depends(get_db)):
    customer = ledger_service.create_customer(db, **payload.model_dump())
    db.commit()
    db.refresh(customer)
    return customer


@router.get("/{customer_id}", response_model=CustomerResponse)
def get_customer(customer_id: int, db: Session = Depends(get_db)):
    return ledger_service.get_customer(db, customer_id)


@router.post("/{customer_id}/payments", response_model=CreditPaymentResponse)
def record_credit_payment(
    customer_id: int,
    payload: CreditPaymentCreate,
    session_factory=Depends(get_session_factory),
):
    """Customer pays back (part of) their outstanding balance."""
    balance_after = run_with_retry(
        lambda s: ledger_service.record_payment(
            s,
            customer_id,
            payload.amount,
            mode=payload.mode,
            reference=payload.reference,
            notes=payload.notes,
        ),
        session_factory,
    )
    AuditLog.log_credit_payment(customer_id, payload.amount, payload.mode.value, balance_after)
    return CreditPaymentResponse(customer_id=customer_id, amount=payload.amount, balance_after=balance_after)


@router.get("/{customer_id}/ledger", response_model=LedgerResponse)
def get_ledger(customer_id: int, db: Session = Depends(get_db)):
    customer = ledger_service.get_customer(db, customer_id)
    entries = ledger_service.list_entries(db, customer_id)
    return LedgerResponse(
        customer=CustomerResponse.model_validate(customer),
        balance=ledger_service.recompute_balance(db, customer_id),
        verified=ledger_service.verify_balance(db, customer_id),
        entries=[CreditEntryResponse.model_validate(e) for e in entries],
    )
