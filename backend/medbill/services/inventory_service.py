"""Stock ledger: medicines, batches and the only code allowed to move batch quantity.

deduct/restore never commit. They run inside the caller's unit of work so a
deduction always lands (or rolls back) together with the BillItem it backs.
"""
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from medbill.core.config import settings
from medbill.core.exceptions import (
    BatchNotFound,
    DuplicateBatch,
    InsufficientStock,
    InvalidGstRate,
    InvalidInput,
    InvalidQuantity,
    MedicineNotFound,
)
from medbill.models.batch import Batch
from medbill.models.enums import PriceType, Taxability
from medbill.models.medicine import Medicine
from medbill.services.gst_service import is_valid_gst_rate, money2

logger = logging.getLogger(__name__)


class StockStatus(str, Enum):
    OUT_OF_STOCK = "OUT_OF_STOCK"
    LOW_STOCK = "LOW_STOCK"
    IN_STOCK = "IN_STOCK"


class ExpiryStatus(str, Enum):
    EXPIRED = "EXPIRED"
    EXPIRING_SOON = "EXPIRING_SOON"
    OK = "OK"


def stock_status(quantity: int, reorder_level: int) -> StockStatus:
    if quantity <= 0:
        return StockStatus.OUT_OF_STOCK
    if quantity <= (reorder_level or 0):
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


def expiry_status(expiry_date: date, today: Optional[date] = None, warning_days: Optional[int] = None) -> ExpiryStatus:
    today = today or date.today()
    warning_days = settings.EXPIRY_ALERT_DAYS if warning_days is None else warning_days
    if expiry_date <= today:
        return ExpiryStatus.EXPIRED
    if expiry_date <= today + timedelta(days=warning_days):
        return ExpiryStatus.EXPIRING_SOON
    return ExpiryStatus.OK


@dataclass(frozen=True)
class StockItem:
    """Batch joined with its medicine plus derived status. Read-only projection."""
    batch_id: int
    batch_number: str
    expiry_date: date
    purchase_price: Decimal
    mrp: Decimal
    selling_price: Decimal
    price_type: str
    quantity: int
    tablets_per_strip: int
    rack: Optional[str]
    box: Optional[str]
    last_sold_date: Optional[date]
    medicine_id: int
    medicine_name: str
    generic_name: Optional[str]
    manufacturer: Optional[str]
    hsn_code: str
    gst_rate: Decimal
    reorder_level: int
    is_schedule: bool
    stock_status: StockStatus
    expiry_status: ExpiryStatus
    days_to_expiry: int


def to_stock_item(batch: Batch, medicine: Medicine, today: Optional[date] = None) -> StockItem:
    today = today or date.today()
    reorder = medicine.reorder_level if medicine.reorder_level is not None else 10
    return StockItem(
        batch_id=batch.id,
        batch_number=batch.batch_number,
        expiry_date=batch.expiry_date,
        purchase_price=money2(batch.purchase_price),
        mrp=money2(batch.mrp),
        selling_price=money2(batch.selling_price),
        price_type=batch.price_type,
        quantity=int(batch.quantity or 0),
        tablets_per_strip=int(batch.tablets_per_strip or settings.DEFAULT_TABLETS_PER_STRIP),
        rack=batch.rack,
        box=batch.box,
        last_sold_date=batch.last_sold_date,
        medicine_id=medicine.id,
        medicine_name=medicine.name,
        generic_name=medicine.generic_name,
        manufacturer=medicine.manufacturer,
        hsn_code=medicine.hsn_code,
        gst_rate=Decimal(str(medicine.gst_rate)),
        reorder_level=reorder,
        is_schedule=bool(medicine.is_schedule),
        stock_status=stock_status(int(batch.quantity or 0), reorder),
        expiry_status=expiry_status(batch.expiry_date, today),
        days_to_expiry=(batch.expiry_date - today).days,
    )


# ==============================================================================
# MEDICINES
# ==============================================================================

def create_medicine(
    db: Session,
    name: str,
    gst_rate=12,
    hsn_code: str = "3004",
    generic_name: str | None = None,
    manufacturer: str | None = None,
    category: str | None = None,
    unit: str = "PCS",
    reorder_level: int = 10,
    is_schedule: bool = False,
) -> Medicine:
    if not (name or "").strip():
        raise InvalidInput("Medicine name cannot be empty")
    if not is_valid_gst_rate(gst_rate):
        raise InvalidGstRate(f"GST rate must be 0, 5, 12 or 18, got {gst_rate}")
    med = Medicine(
        name=name.strip(),
        generic_name=generic_name,
        manufacturer=manufacturer,
        hsn_code=hsn_code or "3004",
        gst_rate=Decimal(str(gst_rate)),
        taxability=Taxability.EXEMPT.value if Decimal(str(gst_rate)) == 0 else Taxability.TAXABLE.value,
        category=category,
        unit=unit,
        reorder_level=reorder_level,
        is_schedule=is_schedule,
        is_active=True,
    )
    db.add(med)
    db.flush()
    logger.info(f"Created medicine {med.id}: {med.name}")
    return med


def get_medicine(db: Session, medicine_id: int, include_inactive: bool = False) -> Medicine:
    q = db.query(Medicine).filter(Medicine.id == medicine_id)
    if not include_inactive:
        q = q.filter(Medicine.is_active.is_(True))
    med = q.first()
    if not med:
        raise MedicineNotFound(f"Medicine not found: {medicine_id}")
    return med


_MEDICINE_FIELDS = (
    "name", "generic_name", "manufacturer", "hsn_code", "gst_rate", "category",
    "unit", "reorder_level", "is_schedule",
)


def update_medicine(db: Session, medicine_id: int, **changes) -> Medicine:
    """Catalog edit. Historical bills keep their snapshot fields."""
    med = get_medicine(db, medicine_id)
    for key, value in changes.items():
        if key not in _MEDICINE_FIELDS or value is None:
            continue
        if key == "gst_rate":
            if not is_valid_gst_rate(value):
                raise InvalidGstRate(f"GST rate must be 0, 5, 12 or 18, got {value}")
            value = Decimal(str(value))
            med.taxability = Taxability.EXEMPT.value if value == 0 else Taxability.TAXABLE.value
        setattr(med, key, value)
    db.flush()
    return med


def deactivate_medicine(db: Session, medicine_id: int) -> Medicine:
    """Soft delete. Batches and bill snapshots stay intact."""
    med = get_medicine(db, medicine_id)
    med.is_active = False
    db.flush()
    logger.info(f"Deactivated medicine {medicine_id}")
    return med


# ==============================================================================
# BATCHES
# ==============================================================================

def create_batch(
    db: Session,
    medicine_id: int,
    batch_number: str,
    expiry_date: date,
    selling_price,
    mrp=None,
    purchase_price=0,
    price_type: PriceType = PriceType.INCLUSIVE,
    quantity: int = 0,
    quantity_in_strips: bool = False,
    tablets_per_strip: int | None = None,
    rack: str | None = None,
    box: str | None = None,
) -> int:
    """
    Register a physical lot and return its id.

    quantity is in pieces unless quantity_in_strips is set, in which case it is
    multiplied by tablets_per_strip before storing.
    """
    get_medicine(db, medicine_id)
    batch_number = (batch_number or "").strip()
    if not batch_number:
        raise InvalidInput("Batch number cannot be empty")
    if int(quantity) < 0:
        raise InvalidQuantity("Quantity cannot be negative")
    if money2(selling_price) < 0:
        raise InvalidInput("Selling price cannot be negative")

    exists = db.query(Batch.id).filter(
        Batch.medicine_id == medicine_id, Batch.batch_number == batch_number
    ).first()
    if exists:
        raise DuplicateBatch(f"Batch {batch_number} already exists for medicine {medicine_id}")

    per_strip = int(tablets_per_strip or settings.DEFAULT_TABLETS_PER_STRIP)
    pieces = int(quantity) * per_strip if quantity_in_strips else int(quantity)

    batch = Batch(
        medicine_id=medicine_id,
        batch_number=batch_number,
        expiry_date=expiry_date,
        purchase_price=money2(purchase_price),
        mrp=money2(mrp if mrp is not None else selling_price),
        selling_price=money2(selling_price),
        price_type=PriceType(price_type).value,
        quantity=pieces,
        tablets_per_strip=per_strip,
        rack=rack,
        box=box,
        is_active=True,
    )
    db.add(batch)
    db.flush()
    logger.info(f"Created batch {batch.id} ({batch_number}) for medicine {medicine_id}: {pieces} pcs")
    return batch.id


def get_batch(db: Session, batch_id: int) -> Batch:
    batch = db.query(Batch).filter(Batch.id == batch_id, Batch.is_active.is_(True)).first()
    if not batch:
        raise BatchNotFound(f"Batch not found: {batch_id}")
    return batch


def get_stock_item(db: Session, batch_id: int, today: Optional[date] = None) -> StockItem:
    row = (
        db.query(Batch, Medicine)
        .join(Medicine, Batch.medicine_id == Medicine.id)
        .filter(Batch.id == batch_id, Batch.is_active.is_(True), Medicine.is_active.is_(True))
        .first()
    )
    if not row:
        raise BatchNotFound(f"Batch not found: {batch_id}")
    return to_stock_item(row[0], row[1], today)


def available_quantity(db: Session, batch_id: int) -> int:
    return int(get_batch(db, batch_id).quantity or 0)


def deduct(db: Session, batch_id: int, qty: int, sold_on: Optional[date] = None) -> Batch:
    """
    Remove ``qty`` pieces from a batch and stamp last_sold_date.

    Raises InsufficientStock (quantity untouched) if qty exceeds what is on hand.
    """
    qty = int(qty)
    if qty <= 0:
        raise InvalidQuantity(f"Deduction quantity must be positive, got {qty}")
    batch = get_batch(db, batch_id)
    # Re-read inside the transaction so a concurrent sale since validation is seen.
    db.refresh(batch)
    available = int(batch.quantity or 0)
    if qty > available:
        raise InsufficientStock(batch_id, qty, available, name=batch.batch_number)
    batch.quantity = available - qty
    batch.last_sold_date = sold_on or date.today()
    db.flush()
    logger.debug(f"Deducted {qty} from batch {batch_id}: {available} -> {batch.quantity}")
    return batch


def restore(db: Session, batch_id: int, qty: int) -> Batch:
    """Put pieces back (returns, cancellations). No upper bound."""
    qty = int(qty)
    if qty <= 0:
        raise InvalidQuantity(f"Restore quantity must be positive, got {qty}")
    batch = db.query(Batch).filter(Batch.id == batch_id).first()
    if not batch:
        raise BatchNotFound(f"Batch not found: {batch_id}")
    db.refresh(batch)
    before = int(batch.quantity or 0)
    batch.quantity = before + qty
    db.flush()
    logger.debug(f"Restored {qty} to batch {batch_id}: {before} -> {batch.quantity}")
    return batch


# ==============================================================================
# STOCK PROJECTIONS
# ==============================================================================

def _stock_query(db: Session):
    return (
        db.query(Batch, Medicine)
        .join(Medicine, Batch.medicine_id == Medicine.id)
        .filter(Batch.is_active.is_(True), Medicine.is_active.is_(True))
    )


def search_stock_for_billing(db: Session, term: str, today: Optional[date] = None, limit: int = 50) -> List[StockItem]:
    """Sellable batches (in stock, not expired) matching name, generic name or batch number."""
    today = today or date.today()
    like = f"%{(term or '').strip()}%"
    rows = (
        _stock_query(db)
        .filter(
            Batch.quantity > 0,
            Batch.expiry_date > today,
            or_(Medicine.name.ilike(like), Medicine.generic_name.ilike(like), Batch.batch_number.ilike(like)),
        )
        .order_by(Medicine.name.asc(), Batch.expiry_date.asc())
        .limit(limit)
        .all()
    )
    return [to_stock_item(b, m, today) for b, m in rows]


def list_low_stock(db: Session, today: Optional[date] = None) -> List[StockItem]:
    rows = (
        _stock_query(db)
        .filter(Batch.quantity <= func.coalesce(Medicine.reorder_level, 10))
        .order_by(Batch.quantity.asc(), Medicine.name.asc())
        .all()
    )
    return [to_stock_item(b, m, today) for b, m in rows]


def list_expiring(db: Session, days: Optional[int] = None, today: Optional[date] = None) -> List[StockItem]:
    """Batches with stock whose expiry falls within ``days`` (already expired included)."""
    today = today or date.today()
    days = settings.EXPIRY_ALERT_DAYS if days is None else days
    rows = (
        _stock_query(db)
        .filter(Batch.quantity > 0, Batch.expiry_date <= today + timedelta(days=days))
        .order_by(Batch.expiry_date.asc())
        .all()
    )
    return [to_stock_item(b, m, today) for b, m in rows]


def list_non_moving(db: Session, days: Optional[int] = None, today: Optional[date] = None) -> List[StockItem]:
    """Batches with stock that have not sold in ``days`` (never-sold batches count too)."""
    today = today or date.today()
    days = settings.NON_MOVING_DAYS if days is None else days
    cutoff = today - timedelta(days=days)
    rows = (
        _stock_query(db)
        .filter(
            Batch.quantity > 0,
            or_(Batch.last_sold_date.is_(None), Batch.last_sold_date < cutoff),
        )
        .order_by(Batch.last_sold_date.asc(), Medicine.name.asc())
        .all()
    )
    return [to_stock_item(b, m, today) for b, m in rows]


def stock_value(db: Session) -> dict:
    purchase = Decimal("0")
    sale = Decimal("0")
    pieces = 0
    for batch, _ in _stock_query(db).filter(Batch.quantity > 0).all():
        qty = int(batch.quantity or 0)
        purchase += money2(batch.purchase_price) * qty
        sale += money2(batch.selling_price) * qty
        pieces += qty
    return {
        "total_purchase_value": money2(purchase),
        "total_sale_value": money2(sale),
        "total_items": pieces,
    }
