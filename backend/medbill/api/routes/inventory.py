"""Inventory API: medicines, batches and stock projections."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from medbill.api.deps import get_db
from medbill.schemas.inventory import (
    BatchCreate,
    MedicineCreate,
    MedicineResponse,
    MedicineUpdate,
    StockItemResponse,
    StockValueResponse,
)
from medbill.services import inventory_service

router = APIRouter()


# ==============================================================================
# MEDICINES
# ==============================================================================

@router.post("/medicines", response_model=MedicineResponse, status_code=status.HTTP_201_CREATED)
def create_medicine(payload: MedicineCreate, db: Session = Depends(get_db)):
    med = inventory_service.create_medicine(db, **payload.model_dump())
    db.commit()
    db.refresh(med)
    return med


@router.get("/medicines/{medicine_id}", response_model=MedicineResponse)
def get_medicine(medicine_id: int, db: Session = Depends(get_db)):
    return inventory_service.get_medicine(db, medicine_id)


@router.patch("/medicines/{medicine_id}", response_model=MedicineResponse)
def update_medicine(medicine_id: int, payload: MedicineUpdate, db: Session = Depends(get_db)):
    med = inventory_service.update_medicine(db, medicine_id, **payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(med)
    return med


@router.delete("/medicines/{medicine_id}", response_model=dict)
def deactivate_medicine(medicine_id: int, db: Session = Depends(get_db)):
    """Soft delete; historical bills keep their snapshots."""
    inventory_service.deactivate_medicine(db, medicine_id)
    db.commit()
    return {"status": "deactivated", "id": medicine_id}


# ==============================================================================
# BATCHES
# ==============================================================================

@router.post(
    "/medicines/{medicine_id}/batches",
    response_model=StockItemResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_batch(medicine_id: int, payload: BatchCreate, db: Session = Depends(get_db)):
    batch_id = inventory_service.create_batch(db, medicine_id, **payload.model_dump())
    db.commit()
    return inventory_service.get_stock_item(db, batch_id)


@router.get("/batches/{batch_id}", response_model=StockItemResponse)
def get_batch(batch_id: int, db: Session = Depends(get_db)):
    return inventory_service.get_stock_item(db, batch_id)


# ==============================================================================
# STOCK PROJECTIONS
# ==============================================================================

@router.get("/stock/search", response_model=List[StockItemResponse])
def search_stock(
    q: str = Query("", description="Medicine, generic or batch number"),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """Sellable batches for the billing screen."""
    return inventory_service.search_stock_for_billing(db, q, limit=limit)


@router.get("/stock/low-stock", response_model=List[StockItemResponse])
def low_stock(db: Session = Depends(get_db)):
    return inventory_service.list_low_stock(db)


@router.get("/stock/expiring", response_model=List[StockItemResponse])
def expiring(days: Optional[int] = Query(None, ge=0), db: Session = Depends(get_db)):
    return inventory_service.list_expiring(db, days=days)


@router.get("/stock/non-moving", response_model=List[StockItemResponse])
def non_moving(days: Optional[int] = Query(None, ge=0), db: Session = Depends(get_db)):
    return inventory_service.list_non_moving(db, days=days)


@router.get("/stock/value", response_model=StockValueResponse)
def stock_value(db: Session = Depends(get_db)):
    return inventory_service.stock_value(db)
