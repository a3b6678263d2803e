"""
Customer credit ("udhar") ledger.

Append-only: rows are never updated or deleted. amount is signed
(SALE positive, PAYMENT/RETURN negative, ADJUSTMENT either way) so
Customer.current_balance == SUM(amount).
"""
from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, DateTime, Text, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from medbill.db.base import Base


class Credit(Base):
    __tablename__ = "credits"
    __table_args__ = (
        CheckConstraint(
            "transaction_type IN ('SALE', 'PAYMENT', 'ADJUSTMENT', 'RETURN')",
            name="ck_credits_transaction_type",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    bill_id = Column(Integer, ForeignKey("bills.id"), nullable=True, index=True)
    transaction_type = Column(String(16), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    balance_after = Column(Numeric(12, 2), nullable=False)
    payment_mode = Column(String(16), nullable=True)
    reference = Column(String(128), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    customer = relationship("Customer", backref="credit_entries")
