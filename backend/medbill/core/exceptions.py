"""
Typed errors raised by the billing engine.

Every error carries a stable ``code`` and a ``category`` so the till UI can tell
"show the user a retry button" apart from "this sale cannot proceed":

- validation: rejected before any write, never retried
- conflict:   stock consumed since the pre-check, caller re-prompts with fresh stock
- setup:      needs an administrative fix (e.g. bill_sequence row missing)
- storage:    transient lock/IO failure that exhausted local retries

HTTP mapping lives in ``BusinessError.from_billing_error``: specific details are
fine for validation/conflict (the operator caused them), storage and setup
failures are logged internally and answered with a generic message.
"""
import logging

from fastapi import HTTPException, status

logger = logging.getLogger(__name__)


class BillingError(Exception):
    """Base class for all engine errors."""

    code = "BILLING_ERROR"
    category = "validation"
    retryable = False
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "", **context):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.context = context

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message, "retryable": self.retryable}


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class InvalidInput(BillingError):
    code = "INVALID_INPUT"


class EmptyCart(BillingError):
    code = "EMPTY_CART"


class InvalidQuantity(BillingError):
    code = "INVALID_QUANTITY"


class InvalidPayment(BillingError):
    code = "INVALID_PAYMENT"


class InvalidDiscount(BillingError):
    code = "INVALID_DISCOUNT"


class InvalidGstRate(BillingError):
    code = "INVALID_GST_RATE"


class CustomerRequiredForCredit(BillingError):
    code = "CUSTOMER_REQUIRED_FOR_CREDIT"


class PatientInfoRequired(BillingError):
    code = "PATIENT_INFO_REQUIRED"


class ExpiredBatch(BillingError):
    code = "EXPIRED_BATCH"


class DuplicateBatch(BillingError):
    code = "DUPLICATE_BATCH"
    http_status = status.HTTP_409_CONFLICT


class ReturnExceedsSold(BillingError):
    code = "RETURN_EXCEEDS_SOLD"


class BillNotCancellable(BillingError):
    code = "BILL_NOT_CANCELLABLE"
    http_status = status.HTTP_409_CONFLICT


class BillNotReturnable(BillingError):
    code = "BILL_NOT_RETURNABLE"
    http_status = status.HTTP_409_CONFLICT


class BatchRequiredForDeduction(BillingError):
    code = "BATCH_REQUIRED_FOR_DEDUCTION"


class InvalidRunningBillTransition(BillingError):
    code = "INVALID_RUNNING_BILL_TRANSITION"
    http_status = status.HTTP_409_CONFLICT


class NotFound(BillingError):
    code = "NOT_FOUND"
    http_status = status.HTTP_404_NOT_FOUND


class BatchNotFound(NotFound):
    code = "BATCH_NOT_FOUND"


class MedicineNotFound(NotFound):
    code = "MEDICINE_NOT_FOUND"


class CustomerNotFound(NotFound):
    code = "CUSTOMER_NOT_FOUND"


class BillNotFound(NotFound):
    code = "BILL_NOT_FOUND"


class RunningBillNotFound(NotFound):
    code = "RUNNING_BILL_NOT_FOUND"


# ---------------------------------------------------------------------------
# Concurrency / race
# ---------------------------------------------------------------------------

class InsufficientStock(BillingError):
    code = "INSUFFICIENT_STOCK"
    category = "conflict"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, batch_id: int, requested: int, available: int, name: str = ""):
        label = name or f"batch {batch_id}"
        super().__init__(
            f"Insufficient stock for {label}. Available: {available}, requested: {requested}",
            batch_id=batch_id,
            requested=requested,
            available=available,
        )
        self.batch_id = batch_id
        self.requested = requested
        self.available = available


# ---------------------------------------------------------------------------
# Setup / storage
# ---------------------------------------------------------------------------

class SequenceNotInitialized(BillingError):
    code = "SEQUENCE_NOT_INITIALIZED"
    category = "setup"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR


class StorageUnavailable(BillingError):
    code = "STORAGE_UNAVAILABLE"
    category = "storage"
    retryable = True
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE


class BusinessError:
    """HTTP responses for engine errors with safe (non-leaky) messages."""

    @staticmethod
    def from_billing_error(exc: BillingError) -> HTTPException:
        """
        Validation and conflict errors are returned verbatim since the operator
        caused them. Setup and storage failures are logged with context and
        answered generically.
        """
        if exc.category in ("setup", "storage"):
            logger.error(f"{exc.category} failure: {exc.code}: {exc.message}", exc_info=exc)
            detail = {
                "error": exc.code,
                "detail": "Billing is unavailable. Contact the administrator."
                if exc.category == "setup"
                else "Storage is busy. Please retry.",
                "retryable": exc.retryable,
            }
        else:
            logger.info(f"Rejected: {exc.code}: {exc.message}")
            detail = exc.to_dict()
        return HTTPException(status_code=exc.http_status, detail=detail)

