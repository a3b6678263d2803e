"""
Audit logging for money- and stock-moving operations.

Every committed sale, cancellation, return, running-bill transition and credit
payment emits one JSON line on the ``audit`` logger so the shop owner can
reconstruct what happened at the till.

Events are emitted after the service call returns, from the API layer, so a
rolled-back transaction never leaves an audit line behind.
"""
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

# Separate logger for audit events (can be shipped to centralized logging)
audit_logger = logging.getLogger("audit")


def _json_default(value):
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return str(value)


def _emit(event_type: str, level: int = logging.INFO, **fields):
    log_entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type,
    }
    log_entry.update({k: v for k, v in fields.items() if v is not None})
    audit_logger.log(level, json.dumps(log_entry, default=_json_default))
    return log_entry


class AuditLog:
    """Central audit logging for billing events."""

    @staticmethod
    def log_bill_created(bill) -> Dict[str, Any]:
        """
        Usage:
            AuditLog.log_bill_created(bill)
        """
        return _emit(
            "bill.created",
            bill_id=bill.id,
            bill_number=bill.bill_number,
            customer_id=bill.customer_id,
            payment_mode=bill.payment_mode,
            grand_total=bill.grand_total,
            credit_amount=bill.credit_amount,
            total_items=bill.total_items,
        )

    @staticmethod
    def log_bill_cancelled(bill, reason: Optional[str] = None) -> Dict[str, Any]:
        return _emit(
            "bill.cancelled",
            logging.WARNING,
            bill_id=bill.id,
            bill_number=bill.bill_number,
            grand_total=bill.grand_total,
            reason=reason,
        )

    @staticmethod
    def log_sales_return(sales_return) -> Dict[str, Any]:
        return _emit(
            "bill.returned",
            return_id=sales_return.id,
            return_number=sales_return.return_number,
            bill_id=sales_return.bill_id,
            refund_mode=sales_return.refund_mode,
            total_amount=sales_return.total_amount,
        )

    @staticmethod
    def log_running_bill(running_bill, action: str) -> Dict[str, Any]:
        """
        action: "stocked" or "cancelled".

        Usage:
            AuditLog.log_running_bill(rb, "stocked")
        """
        return _emit(
            f"running_bill.{action}",
            running_bill_id=running_bill.id,
            bill_id=running_bill.bill_id,
            status=running_bill.status,
            linked_batch_id=running_bill.linked_batch_id,
            deducted=running_bill.deducted,
            stocked_by=running_bill.stocked_by,
        )

    @staticmethod
    def log_credit_payment(customer_id: int, amount, mode: str, balance_after) -> Dict[str, Any]:
        return _emit(
            "credit.payment",
            customer_id=customer_id,
            amount=amount,
            payment_mode=mode,
            balance_after=balance_after,
        )

    @staticmethod
    def log_api_call(
        endpoint: str,
        method: str,
        status_code: int = 200,
        duration_ms: float = 0,
    ) -> Dict[str, Any]:
        """Request timing, used by the HTTP middleware."""
        return _emit(
            "api.call",
            endpoint=endpoint,
            method=method,
            status_code=status_code,
            duration_ms=round(duration_ms, 2),
        )
