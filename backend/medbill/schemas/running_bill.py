from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class RunningBillResponse(BaseModel):
    id: int
    bill_id: int
    bill_item_id: Optional[int] = None
    medicine_name: str
    quantity: int
    unit_price: Decimal
    total_amount: Decimal
    gst_rate: Optional[Decimal] = None
    hsn_code: Optional[str] = None
    notes: Optional[str] = None
    status: str
    linked_batch_id: Optional[int] = None
    linked_medicine_id: Optional[int] = None
    deducted: bool
    stocked_at: Optional[datetime] = None
    stocked_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RunningBillLink(BaseModel):
    batch_id: Optional[int] = None
    deduct: bool = True
    linked_by: Optional[str] = None


class RunningBillLinkResponse(BaseModel):
    outcome: str  # StockedWithDeduction | StockedWithoutDeduction
    batch_id: Optional[int] = None
    running_bill: RunningBillResponse
