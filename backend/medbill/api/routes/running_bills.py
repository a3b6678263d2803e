"""Running bills: link to stock once it arrives, or cancel."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from medbill.api.deps import get_db, get_session_factory
from medbill.core.audit import AuditLog
from medbill.db.session import run_with_retry
from medbill.models.enums import RunningBillStatus
from medbill.schemas.running_bill import RunningBillLink, RunningBillLinkResponse, RunningBillResponse
from medbill.services import running_bill_service

router = APIRouter()


@router.get("", response_model=List[RunningBillResponse])
def list_running_bills(
    status: Optional[RunningBillStatus] = Query(None),
    bill_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
):
    return running_bill_service.list_running_bills(db, status=status, bill_id=bill_id)


@router.post("/{running_bill_id}/link", response_model=RunningBillLinkResponse)
def link_running_bill(
    running_bill_id: int,
    payload: RunningBillLink,
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    outcome = run_with_retry(
        lambda s: running_bill_service.link_running_bill_to_stock(
            s,
            running_bill_id,
            batch_id=payload.batch_id,
            deduct=payload.deduct,
            linked_by=payload.linked_by,
        ),
        session_factory,
    )
    rb = running_bill_service.get_running_bill(db, running_bill_id)
    AuditLog.log_running_bill(rb, "stocked")
    return RunningBillLinkResponse(
        outcome=type(outcome).__name__,
        batch_id=outcome.batch_id,
        running_bill=RunningBillResponse.model_validate(rb),
    )


@router.post("/{running_bill_id}/cancel", response_model=RunningBillResponse)
def cancel_running_bill(
    running_bill_id: int,
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    run_with_retry(
        lambda s: running_bill_service.cancel_running_bill(s, running_bill_id).id,
        session_factory,
    )
    rb = running_bill_service.get_running_bill(db, running_bill_id)
    AuditLog.log_running_bill(rb, "cancelled")
    return rb
