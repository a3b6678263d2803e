from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, CheckConstraint
from sqlalchemy.sql import func
from medbill.db.base import Base


class Medicine(Base):
    """
    Catalog entry.

    COMPLIANCE NOTE:
    - is_schedule: Schedule H/H1 drug. Every sale line needs a patient record.
    - Never hard-deleted once batches reference it; deactivate instead.
    """
    __tablename__ = "medicines"
    __table_args__ = (
        CheckConstraint("gst_rate IN (0, 5, 12, 18)", name="ck_medicines_gst_rate"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    generic_name = Column(String(255), nullable=True)
    manufacturer = Column(String(255), nullable=True)
    hsn_code = Column(String(16), nullable=False, default="3004")
    gst_rate = Column(Numeric(5, 2), nullable=False, default=12)
    taxability = Column(String(16), nullable=False, default="TAXABLE")  # TAXABLE | EXEMPT
    category = Column(String(128), nullable=True)
    unit = Column(String(16), default="PCS")
    reorder_level = Column(Integer, default=10)
    is_schedule = Column(Boolean, default=False, index=True)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Medicine id={self.id} name={self.name!r}>"
