from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from medbill.models.enums import PaymentMode


class CustomerCreate(BaseModel):
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    gstin: Optional[str] = None
    credit_limit: Decimal = Decimal("0")


class CustomerResponse(BaseModel):
    id: int
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    gstin: Optional[str] = None
    credit_limit: Optional[Decimal] = None
    current_balance: Decimal

    class Config:
        from_attributes = True


class CreditPaymentCreate(BaseModel):
    amount: Decimal
    mode: PaymentMode = PaymentMode.CASH
    reference: Optional[str] = None
    notes: Optional[str] = None


class CreditPaymentResponse(BaseModel):
    customer_id: int
    amount: Decimal
    balance_after: Decimal


class CreditEntryResponse(BaseModel):
    id: int
    bill_id: Optional[int] = None
    transaction_type: str
    amount: Decimal
    balance_after: Decimal
    payment_mode: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LedgerResponse(BaseModel):
    customer: CustomerResponse
    balance: Decimal
    verified: bool
    entries: List[CreditEntryResponse]
