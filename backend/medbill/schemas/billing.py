from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from medbill.models.enums import DiscountType, PaymentMode, RefundMode
from medbill.services.billing_service import (
    CartLine,
    CashPayment,
    CreateBillRequest,
    CreditPayment,
    OnlinePayment,
    PatientInfo,
    ReturnLine,
    SplitPayment,
)
from medbill.services.gst_service import Discount


class DiscountIn(BaseModel):
    type: DiscountType = DiscountType.PERCENTAGE
    value: Decimal = Decimal("0")

    def to_domain(self) -> Discount:
        return Discount(self.type, self.value)


class PatientInfoIn(BaseModel):
    patient_name: str
    patient_age: Optional[int] = None
    patient_gender: Optional[str] = None  # M | F | O
    patient_phone: Optional[str] = None
    patient_address: Optional[str] = None
    doctor_name: Optional[str] = None
    doctor_registration_number: Optional[str] = None
    clinic_hospital_name: Optional[str] = None
    prescription_number: Optional[str] = None
    prescription_date: Optional[date] = None

    def to_domain(self) -> PatientInfo:
        return PatientInfo(**self.model_dump())


class CartLineIn(BaseModel):
    batch_id: Optional[int] = None  # None = running bill
    quantity: int
    discount: Optional[DiscountIn] = None
    unit_price: Optional[Decimal] = None
    medicine_name: Optional[str] = None
    gst_rate: Optional[Decimal] = None
    hsn_code: Optional[str] = None
    notes: Optional[str] = None
    patient: Optional[PatientInfoIn] = None

    def to_domain(self) -> CartLine:
        return CartLine(
            quantity=self.quantity,
            batch_id=self.batch_id,
            discount=self.discount.to_domain() if self.discount else None,
            unit_price=self.unit_price,
            medicine_name=self.medicine_name,
            gst_rate=self.gst_rate,
            hsn_code=self.hsn_code,
            notes=self.notes,
            patient=self.patient.to_domain() if self.patient else None,
        )


class PaymentIn(BaseModel):
    mode: PaymentMode = PaymentMode.CASH
    # SPLIT only; the remainder goes on credit
    cash_amount: Decimal = Decimal("0")
    online_amount: Decimal = Decimal("0")

    def to_domain(self):
        if self.mode == PaymentMode.ONLINE:
            return OnlinePayment()
        if self.mode == PaymentMode.CREDIT:
            return CreditPayment()
        if self.mode == PaymentMode.SPLIT:
            return SplitPayment(cash=self.cash_amount, online=self.online_amount)
        return CashPayment()


class BillCreate(BaseModel):
    items: List[CartLineIn]
    payment: PaymentIn = Field(default_factory=PaymentIn)
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    doctor_name: Optional[str] = None
    discount: Optional[DiscountIn] = None
    patient: Optional[PatientInfoIn] = None
    notes: Optional[str] = None

    def to_request(self) -> CreateBillRequest:
        return CreateBillRequest(
            items=[line.to_domain() for line in self.items],
            payment=self.payment.to_domain(),
            customer_id=self.customer_id,
            customer_name=self.customer_name,
            doctor_name=self.doctor_name,
            bill_discount=self.discount.to_domain() if self.discount else None,
            patient=self.patient.to_domain() if self.patient else None,
            notes=self.notes,
        )


class BillItemResponse(BaseModel):
    id: int
    batch_id: Optional[int] = None
    medicine_id: Optional[int] = None
    medicine_name: str
    hsn_code: str
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None
    quantity: int
    quantity_strips: int
    quantity_pieces: int
    unit_price: Decimal
    price_type: str
    discount_amount: Decimal
    fully_discounted: bool
    taxable_value: Decimal
    gst_rate: Decimal
    cgst: Decimal
    sgst: Decimal
    total_gst: Decimal
    total: Decimal
    returned_quantity: int

    class Config:
        from_attributes = True


class BillResponse(BaseModel):
    id: int
    bill_number: str
    bill_date: Optional[datetime] = None
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    doctor_name: Optional[str] = None
    subtotal: Decimal
    item_discount_total: Decimal
    discount_type: Optional[str] = None
    discount_value: Optional[Decimal] = None
    discount_amount: Decimal
    taxable_total: Decimal
    total_cgst: Decimal
    total_sgst: Decimal
    total_gst: Decimal
    round_off: Decimal
    grand_total: Decimal
    payment_mode: str
    cash_amount: Decimal
    online_amount: Decimal
    credit_amount: Decimal
    status: str
    notes: Optional[str] = None
    total_items: int
    items: List[BillItemResponse] = []

    class Config:
        from_attributes = True


class CalculationItem(BaseModel):
    batch_id: Optional[int] = None
    quantity: int
    unit_price: Decimal
    gst_rate: Decimal
    discount_amount: Decimal
    fully_discounted: bool
    taxable_value: Decimal
    cgst: Decimal
    sgst: Decimal
    total_gst: Decimal
    total: Decimal

    class Config:
        from_attributes = True


class CalculationResponse(BaseModel):
    items: List[CalculationItem]
    subtotal: Decimal
    item_discount_total: Decimal
    taxable_total: Decimal
    total_cgst: Decimal
    total_sgst: Decimal
    total_gst: Decimal
    bill_discount: Decimal
    round_off: Decimal
    final_amount: Decimal
    payment_mode: PaymentMode
    cash_amount: Decimal
    online_amount: Decimal
    credit_amount: Decimal


class CancelBillRequest(BaseModel):
    reason: Optional[str] = None


class ReturnLineIn(BaseModel):
    bill_item_id: int
    quantity: int

    def to_domain(self) -> ReturnLine:
        return ReturnLine(self.bill_item_id, self.quantity)


class SalesReturnCreate(BaseModel):
    items: List[ReturnLineIn]
    refund_mode: RefundMode = RefundMode.CASH
    reason: Optional[str] = None


class SalesReturnItemResponse(BaseModel):
    bill_item_id: int
    batch_id: int
    quantity: int
    unit_price: Decimal
    gst_rate: Decimal
    cgst: Decimal
    sgst: Decimal
    total: Decimal

    class Config:
        from_attributes = True


class SalesReturnResponse(BaseModel):
    id: int
    return_number: str
    bill_id: int
    customer_id: Optional[int] = None
    refund_mode: str
    reason: Optional[str] = None
    total_amount: Decimal
    total_gst: Decimal
    items: List[SalesReturnItemResponse] = []

    class Config:
        from_attributes = True


class PaymentModeTotal(BaseModel):
    count: int
    total: Decimal


class SalesSummaryResponse(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    bill_count: int
    gross_sales: Decimal
    total_gst: Decimal
    total_discount: Decimal
    cash_collected: Decimal
    online_collected: Decimal
    credit_given: Decimal
    returns_total: Decimal
    net_sales: Decimal
    by_payment_mode: dict[str, PaymentModeTotal]
