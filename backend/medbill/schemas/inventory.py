from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from medbill.models.enums import PriceType
from medbill.services.inventory_service import ExpiryStatus, StockStatus


class MedicineCreate(BaseModel):
    name: str
    gst_rate: Decimal = Decimal("12")
    hsn_code: str = "3004"
    generic_name: Optional[str] = None
    manufacturer: Optional[str] = None
    category: Optional[str] = None
    unit: str = "PCS"
    reorder_level: int = 10
    is_schedule: bool = False


class MedicineUpdate(BaseModel):
    name: Optional[str] = None
    gst_rate: Optional[Decimal] = None
    hsn_code: Optional[str] = None
    generic_name: Optional[str] = None
    manufacturer: Optional[str] = None
    category: Optional[str] = None
    unit: Optional[str] = None
    reorder_level: Optional[int] = None
    is_schedule: Optional[bool] = None


class MedicineResponse(BaseModel):
    id: int
    name: str
    generic_name: Optional[str] = None
    manufacturer: Optional[str] = None
    hsn_code: str
    gst_rate: Decimal
    taxability: str
    category: Optional[str] = None
    unit: Optional[str] = None
    reorder_level: Optional[int] = None
    is_schedule: bool
    is_active: bool

    class Config:
        from_attributes = True


class BatchCreate(BaseModel):
    batch_number: str
    expiry_date: date
    selling_price: Decimal  # per piece
    mrp: Optional[Decimal] = None
    purchase_price: Decimal = Decimal("0")
    price_type: PriceType = PriceType.INCLUSIVE
    quantity: int = 0
    quantity_in_strips: bool = False
    tablets_per_strip: Optional[int] = None
    rack: Optional[str] = None
    box: Optional[str] = None


class StockItemResponse(BaseModel):
    batch_id: int
    batch_number: str
    expiry_date: date
    purchase_price: Decimal
    mrp: Decimal
    selling_price: Decimal
    price_type: str
    quantity: int
    tablets_per_strip: int
    rack: Optional[str] = None
    box: Optional[str] = None
    last_sold_date: Optional[date] = None
    medicine_id: int
    medicine_name: str
    generic_name: Optional[str] = None
    manufacturer: Optional[str] = None
    hsn_code: str
    gst_rate: Decimal
    reorder_level: int
    is_schedule: bool
    stock_status: StockStatus
    expiry_status: ExpiryStatus
    days_to_expiry: int

    class Config:
        from_attributes = True


class StockValueResponse(BaseModel):
    total_purchase_value: Decimal
    total_sale_value: Decimal
    total_items: int
