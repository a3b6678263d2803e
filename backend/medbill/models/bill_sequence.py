from sqlalchemy import Column, Integer, String, DateTime, CheckConstraint
from sqlalchemy.sql import func
from medbill.db.base import Base


class BillSequence(Base):
    """Singleton counter (id = 1). current_number is the last issued number."""
    __tablename__ = "bill_sequence"
    __table_args__ = (CheckConstraint("id = 1", name="ck_bill_sequence_singleton"),)

    id = Column(Integer, primary_key=True)
    prefix = Column(String(16), nullable=False, default="INV")
    current_number = Column(Integer, nullable=False, default=0)
    financial_year = Column(String(16), nullable=False)  # e.g. "2024-25"
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
