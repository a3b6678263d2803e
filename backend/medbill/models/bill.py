"""
Bill, BillItem and the Schedule H patient record.

SNAPSHOT RULE:
BillItem copies medicine name, HSN, batch number, expiry and prices at sale
time so later catalog edits never alter a historical bill.
"""
from sqlalchemy import (
    Column, Integer, String, ForeignKey, Numeric, Boolean, Date, DateTime, Text,
    CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from medbill.db.base import Base


class Bill(Base):
    __tablename__ = "bills"
    __table_args__ = (
        CheckConstraint(
            "payment_mode IN ('CASH', 'ONLINE', 'CREDIT', 'SPLIT')", name="ck_bills_payment_mode"
        ),
        CheckConstraint(
            "status IN ('COMPLETED', 'CANCELLED', 'RETURNED')", name="ck_bills_status"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    bill_number = Column(String(32), nullable=False, unique=True, index=True)
    bill_date = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = Column(String(255), nullable=True)
    doctor_name = Column(String(255), nullable=True)

    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    item_discount_total = Column(Numeric(12, 2), nullable=False, default=0)
    # Bill-level discount
    discount_type = Column(String(16), nullable=True)  # PERCENTAGE | FLAT
    discount_value = Column(Numeric(10, 2), default=0)
    discount_amount = Column(Numeric(12, 2), default=0)
    # GST totals
    taxable_total = Column(Numeric(12, 2), nullable=False, default=0)
    total_cgst = Column(Numeric(12, 2), nullable=False, default=0)
    total_sgst = Column(Numeric(12, 2), nullable=False, default=0)
    total_gst = Column(Numeric(12, 2), nullable=False, default=0)
    # Final amount (rounded to the rupee) and the rounding delta
    grand_total = Column(Numeric(12, 2), nullable=False, default=0)
    round_off = Column(Numeric(5, 2), default=0)
    # Payment; cash + online + credit == grand_total
    payment_mode = Column(String(16), nullable=False)
    cash_amount = Column(Numeric(12, 2), default=0)
    online_amount = Column(Numeric(12, 2), default=0)
    credit_amount = Column(Numeric(12, 2), default=0)

    status = Column(String(16), nullable=False, default="COMPLETED", index=True)
    notes = Column(Text, nullable=True)
    total_items = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer", backref="bills")
    items = relationship(
        "BillItem", back_populates="bill", order_by="BillItem.id", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Bill {self.bill_number} total={self.grand_total} status={self.status}>"


class BillItem(Base):
    __tablename__ = "bill_items"

    id = Column(Integer, primary_key=True, index=True)
    bill_id = Column(Integer, ForeignKey("bills.id", ondelete="CASCADE"), nullable=False, index=True)
    # NULL only while a running-bill placeholder waits for stock
    batch_id = Column(Integer, ForeignKey("batches.id"), nullable=True, index=True)
    medicine_id = Column(Integer, ForeignKey("medicines.id"), nullable=True, index=True)

    # Item snapshot (for historical accuracy)
    medicine_name = Column(String(255), nullable=False)
    hsn_code = Column(String(16), nullable=False, default="3004")
    batch_number = Column(String(64), nullable=True)
    expiry_date = Column(Date, nullable=True)
    rack = Column(String(32), nullable=True)
    box = Column(String(32), nullable=True)

    # Quantity in pieces plus its strip/piece decomposition
    quantity = Column(Integer, nullable=False)
    quantity_strips = Column(Integer, nullable=False, default=0)
    quantity_pieces = Column(Integer, nullable=False, default=0)
    tablets_per_strip = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(10, 2), nullable=False)
    price_type = Column(String(16), nullable=False)

    # Item-level discount
    discount_type = Column(String(16), nullable=True)
    discount_value = Column(Numeric(10, 2), default=0)
    discount_amount = Column(Numeric(10, 2), default=0)
    fully_discounted = Column(Boolean, default=False)

    # GST
    taxable_value = Column(Numeric(12, 2), nullable=False)
    gst_rate = Column(Numeric(5, 2), nullable=False)
    cgst = Column(Numeric(10, 2), nullable=False, default=0)
    sgst = Column(Numeric(10, 2), nullable=False, default=0)
    total_gst = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False)

    returned_quantity = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    bill = relationship("Bill", back_populates="items")
    batch = relationship("Batch")
    patient_record = relationship("ScheduledMedicineRecord", back_populates="bill_item", uselist=False)


class ScheduledMedicineRecord(Base):
    """
    Regulatory audit trail for Schedule H/H1 sales.
    Write-once: created with its BillItem, never edited.
    """
    __tablename__ = "scheduled_medicine_records"
    __table_args__ = (
        CheckConstraint(
            "patient_gender IS NULL OR patient_gender IN ('M', 'F', 'O')",
            name="ck_scheduled_patient_gender",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    bill_id = Column(Integer, ForeignKey("bills.id"), nullable=False, index=True)
    bill_item_id = Column(Integer, ForeignKey("bill_items.id"), nullable=False, unique=True)
    medicine_id = Column(Integer, ForeignKey("medicines.id"), nullable=False, index=True)
    batch_id = Column(Integer, ForeignKey("batches.id"), nullable=False)
    patient_name = Column(String(255), nullable=False, index=True)
    patient_age = Column(Integer, nullable=True)
    patient_gender = Column(String(1), nullable=True)
    patient_phone = Column(String(64), nullable=True)
    patient_address = Column(String(512), nullable=True)
    doctor_name = Column(String(255), nullable=True)
    doctor_registration_number = Column(String(64), nullable=True)
    clinic_hospital_name = Column(String(255), nullable=True)
    prescription_number = Column(String(64), nullable=True)
    prescription_date = Column(Date, nullable=True)
    quantity = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    bill_item = relationship("BillItem", back_populates="patient_record")
