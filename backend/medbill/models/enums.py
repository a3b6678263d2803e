"""Closed value sets persisted as strings."""
import enum


class PriceType(str, enum.Enum):
    INCLUSIVE = "INCLUSIVE"  # GST included in the selling price (MRP style)
    EXCLUSIVE = "EXCLUSIVE"  # GST added on top


class DiscountType(str, enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FLAT = "FLAT"


class PaymentMode(str, enum.Enum):
    CASH = "CASH"
    ONLINE = "ONLINE"
    CREDIT = "CREDIT"
    SPLIT = "SPLIT"


class BillStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"


class RunningBillStatus(str, enum.Enum):
    PENDING = "PENDING"
    STOCKED = "STOCKED"
    CANCELLED = "CANCELLED"


class CreditType(str, enum.Enum):
    SALE = "SALE"
    PAYMENT = "PAYMENT"
    ADJUSTMENT = "ADJUSTMENT"
    RETURN = "RETURN"


class RefundMode(str, enum.Enum):
    CASH = "CASH"
    CREDIT_NOTE = "CREDIT_NOTE"
    ADJUSTMENT = "ADJUSTMENT"


class Taxability(str, enum.Enum):
    TAXABLE = "TAXABLE"
    EXEMPT = "EXEMPT"
