"""Billing API: sales, previews, cancellation, returns and bill lookups.

Engine errors (BillingError) are not caught here; the app-level handler turns
them into {"error", "detail", "retryable"} responses.
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from medbill.api.deps import get_db, get_session_factory
from medbill.core.audit import AuditLog
from medbill.db.session import run_with_retry
from medbill.models.enums import BillStatus, PaymentMode
from medbill.models.sales_return import SalesReturn
from medbill.schemas.billing import (
    BillCreate,
    BillResponse,
    CalculationItem,
    CalculationResponse,
    CancelBillRequest,
    SalesReturnCreate,
    SalesReturnResponse,
    SalesSummaryResponse,
)
from medbill.services import billing_service

router = APIRouter()


@router.post("/bills", response_model=BillResponse, status_code=status.HTTP_201_CREATED)
def create_bill(
    payload: BillCreate,
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    """Complete a sale. Stock, bill number and credit move together or not at all."""
    request = payload.to_request()
    bill_id = run_with_retry(lambda s: billing_service.create_bill(s, request).id, session_factory)
    bill = billing_service.get_bill(db, bill_id)
    AuditLog.log_bill_created(bill)
    return bill


@router.post("/calculate", response_model=CalculationResponse)
def calculate_bill(payload: BillCreate, db: Session = Depends(get_db)):
    """Totals for the till screen. No writes, no bill number consumed."""
    prepared = billing_service.preview_bill(db, payload.to_request())
    calc = prepared.calculation
    alloc = prepared.allocation
    return CalculationResponse(
        items=[CalculationItem.model_validate(i) for i in calc.items],
        subtotal=calc.subtotal,
        item_discount_total=calc.item_discount_total,
        taxable_total=calc.taxable_total,
        total_cgst=calc.total_cgst,
        total_sgst=calc.total_sgst,
        total_gst=calc.total_gst,
        bill_discount=calc.bill_discount,
        round_off=calc.round_off,
        final_amount=calc.final_amount,
        payment_mode=alloc.mode,
        cash_amount=alloc.cash,
        online_amount=alloc.online,
        credit_amount=alloc.credit,
    )


@router.get("/bills", response_model=List[BillResponse])
def list_bills(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    customer_id: Optional[int] = Query(None),
    payment_mode: Optional[PaymentMode] = Query(None),
    status: Optional[BillStatus] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    return billing_service.list_bills(
        db,
        start_date=start_date,
        end_date=end_date,
        customer_id=customer_id,
        payment_mode=payment_mode,
        status=status,
        limit=limit,
        offset=offset,
    )


@router.get("/bills/number/{bill_number}", response_model=BillResponse)
def get_bill_by_number(bill_number: str, db: Session = Depends(get_db)):
    return billing_service.get_bill_by_number(db, bill_number)


@router.get("/bills/{bill_id}", response_model=BillResponse)
def get_bill(bill_id: int, db: Session = Depends(get_db)):
    return billing_service.get_bill(db, bill_id)


@router.post("/bills/{bill_id}/cancel", response_model=BillResponse)
def cancel_bill(
    bill_id: int,
    payload: Optional[CancelBillRequest] = None,
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    reason = payload.reason if payload else None
    run_with_retry(lambda s: billing_service.cancel_bill(s, bill_id, reason).id, session_factory)
    bill = billing_service.get_bill(db, bill_id)
    AuditLog.log_bill_cancelled(bill, reason)
    return bill


@router.post(
    "/bills/{bill_id}/returns",
    response_model=SalesReturnResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_sales_return(
    bill_id: int,
    payload: SalesReturnCreate,
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    lines = [line.to_domain() for line in payload.items]
    return_id = run_with_retry(
        lambda s: billing_service.create_sales_return(
            s, bill_id, lines, refund_mode=payload.refund_mode, reason=payload.reason
        ).id,
        session_factory,
    )
    sales_return = db.query(SalesReturn).filter(SalesReturn.id == return_id).one()
    AuditLog.log_sales_return(sales_return)
    return sales_return


@router.get("/summary", response_model=SalesSummaryResponse)
def sales_summary(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
):
    """Day-range totals for the dashboard cards."""
    return billing_service.sales_summary(db, start_date, end_date)
