from sqlalchemy import (
    Column, Integer, String, ForeignKey, Numeric, Boolean, Date, DateTime,
    UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from medbill.db.base import Base


class Batch(Base):
    """
    A physical lot of a Medicine.

    quantity is held in pieces (tablets). It is changed only through
    inventory_service.deduct / restore so it can never go negative.
    """
    __tablename__ = "batches"
    __table_args__ = (
        UniqueConstraint("medicine_id", "batch_number", name="uq_batches_medicine_batch"),
        CheckConstraint("quantity >= 0", name="ck_batches_quantity_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    medicine_id = Column(Integer, ForeignKey("medicines.id"), nullable=False, index=True)
    batch_number = Column(String(64), nullable=False)
    expiry_date = Column(Date, nullable=False, index=True)
    purchase_price = Column(Numeric(10, 2), nullable=False, default=0)
    mrp = Column(Numeric(10, 2), nullable=False, default=0)
    selling_price = Column(Numeric(10, 2), nullable=False)  # per piece
    price_type = Column(String(16), nullable=False, default="INCLUSIVE")  # INCLUSIVE | EXCLUSIVE
    quantity = Column(Integer, nullable=False, default=0)
    tablets_per_strip = Column(Integer, nullable=False, default=10)
    rack = Column(String(32), nullable=True)
    box = Column(String(32), nullable=True)
    last_sold_date = Column(Date, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    medicine = relationship("Medicine", backref="batches")

    def __repr__(self):
        return f"<Batch id={self.id} {self.batch_number} qty={self.quantity}>"
