"""
RunningBill: a sale made before the stock physically exists.

Status flow: PENDING -> STOCKED | CANCELLED (both terminal).
The bill stays a valid financial record either way; only the obligation to
decrement inventory is tracked here.
"""
from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, Boolean, DateTime, Text, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from medbill.db.base import Base


class RunningBill(Base):
    __tablename__ = "running_bills"
    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'STOCKED', 'CANCELLED')", name="ck_running_bills_status"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    bill_id = Column(Integer, ForeignKey("bills.id"), nullable=False, index=True)
    bill_item_id = Column(Integer, ForeignKey("bill_items.id"), nullable=True)
    medicine_name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    gst_rate = Column(Numeric(5, 2), default=0)
    hsn_code = Column(String(16), default="3004")
    notes = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default="PENDING", index=True)
    linked_batch_id = Column(Integer, ForeignKey("batches.id"), nullable=True)
    linked_medicine_id = Column(Integer, ForeignKey("medicines.id"), nullable=True)
    deducted = Column(Boolean, nullable=False, default=False)
    stocked_at = Column(DateTime(timezone=True), nullable=True)
    stocked_by = Column(String(128), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    bill = relationship("Bill", backref="running_bills")
    bill_item = relationship("BillItem")

    def __repr__(self):
        return f"<RunningBill id={self.id} {self.medicine_name!r} status={self.status}>"
