"""Stock ledger: batch creation, deduction safety, status and stock projections."""
import random
from datetime import date, timedelta
from decimal import Decimal

import pytest

from medbill.core.exceptions import (
    BatchNotFound,
    DuplicateBatch,
    InsufficientStock,
    InvalidGstRate,
    InvalidInput,
    InvalidQuantity,
    MedicineNotFound,
)
from medbill.services import inventory_service
from medbill.services.inventory_service import ExpiryStatus, StockStatus, expiry_status, stock_status


def test_create_batch_in_strips(db):
    med = inventory_service.create_medicine(db, "Dolo 650", gst_rate=12)
    batch_id = inventory_service.create_batch(
        db, med.id, "D650A", date.today() + timedelta(days=200), "2.10",
        quantity=5, quantity_in_strips=True, tablets_per_strip=15,
    )
    assert inventory_service.available_quantity(db, batch_id) == 75


def test_duplicate_batch_and_unknown_medicine(db):
    med = inventory_service.create_medicine(db, "Crocin", gst_rate=12)
    expiry = date.today() + timedelta(days=90)
    inventory_service.create_batch(db, med.id, "C1", expiry, "1.50", quantity=10)
    with pytest.raises(DuplicateBatch):
        inventory_service.create_batch(db, med.id, "C1", expiry, "1.50", quantity=10)
    with pytest.raises(MedicineNotFound):
        inventory_service.create_batch(db, 9999, "X1", expiry, "1.50")


def test_medicine_validation(db):
    with pytest.raises(InvalidInput):
        inventory_service.create_medicine(db, "   ")
    with pytest.raises(InvalidGstRate):
        inventory_service.create_medicine(db, "Odd Rate", gst_rate=7)
    exempt = inventory_service.create_medicine(db, "Insulin", gst_rate=0)
    assert exempt.taxability == "EXEMPT"


def test_update_and_deactivate_medicine(db):
    med = inventory_service.create_medicine(db, "Zincovit", gst_rate=12)
    inventory_service.update_medicine(db, med.id, gst_rate=18, manufacturer="Apex")
    assert med.gst_rate == Decimal("18")
    assert med.manufacturer == "Apex"
    inventory_service.deactivate_medicine(db, med.id)
    with pytest.raises(MedicineNotFound):
        inventory_service.get_medicine(db, med.id)


def test_deduct_beyond_stock_leaves_quantity(db, make_batch):
    batch_id = make_batch(quantity=60)
    with pytest.raises(InsufficientStock) as exc:
        inventory_service.deduct(db, batch_id, 61)
    assert exc.value.available == 60
    assert inventory_service.available_quantity(db, batch_id) == 60


def test_deduct_stamps_last_sold(db, make_batch):
    batch_id = make_batch(quantity=10)
    batch = inventory_service.deduct(db, batch_id, 4, sold_on=date(2024, 6, 1))
    assert batch.quantity == 6
    assert batch.last_sold_date == date(2024, 6, 1)
    with pytest.raises(InvalidQuantity):
        inventory_service.deduct(db, batch_id, 0)
    with pytest.raises(BatchNotFound):
        inventory_service.deduct(db, 9999, 1)


def test_random_deductions_never_go_negative(db, make_batch):
    batch_id = make_batch(quantity=50)
    rng = random.Random(42)
    expected = 50
    for _ in range(200):
        if rng.random() < 0.2:
            qty = rng.randint(1, 5)
            inventory_service.restore(db, batch_id, qty)
            expected += qty
            continue
        qty = rng.randint(1, 12)
        if qty > expected:
            with pytest.raises(InsufficientStock):
                inventory_service.deduct(db, batch_id, qty)
        else:
            inventory_service.deduct(db, batch_id, qty)
            expected -= qty
        assert inventory_service.available_quantity(db, batch_id) == expected >= 0


def test_status_helpers():
    assert stock_status(0, 10) == StockStatus.OUT_OF_STOCK
    assert stock_status(10, 10) == StockStatus.LOW_STOCK
    assert stock_status(11, 10) == StockStatus.IN_STOCK

    today = date(2024, 6, 1)
    assert expiry_status(today, today) == ExpiryStatus.EXPIRED
    assert expiry_status(today + timedelta(days=30), today) == ExpiryStatus.EXPIRING_SOON
    assert expiry_status(today + timedelta(days=31), today) == ExpiryStatus.OK


def test_stock_item_projection(db, make_batch):
    batch_id = make_batch(name="Azee 500", quantity=5, expiry_date=date.today() + timedelta(days=10))
    item = inventory_service.get_stock_item(db, batch_id)
    assert item.medicine_name == "Azee 500"
    assert item.stock_status == StockStatus.LOW_STOCK
    assert item.expiry_status == ExpiryStatus.EXPIRING_SOON
    assert item.days_to_expiry == 10


def test_stock_lists(db, make_batch):
    fresh = make_batch(name="Pan 40", quantity=200)
    low = make_batch(name="Pan D", quantity=3)
    expiring = make_batch(name="Shelcal", quantity=40, expiry_date=date.today() + timedelta(days=5))
    expired = make_batch(name="Becosules", quantity=40, expiry_date=date.today() - timedelta(days=1))

    assert [i.batch_id for i in inventory_service.list_low_stock(db)] == [low]
    assert {i.batch_id for i in inventory_service.list_expiring(db)} == {expiring, expired}

    inventory_service.deduct(db, fresh, 1)
    non_moving = {i.batch_id for i in inventory_service.list_non_moving(db)}
    assert fresh not in non_moving
    assert low in non_moving

    found = inventory_service.search_stock_for_billing(db, "pan")
    assert {i.batch_id for i in found} == {fresh, low}
    assert expired not in {i.batch_id for i in inventory_service.search_stock_for_billing(db, "becosules")}


def test_stock_value(db, make_batch):
    make_batch(selling_price="10.00", purchase_price="7.50", quantity=10)
    make_batch(selling_price="2.00", purchase_price="1.00", quantity=5)
    value = inventory_service.stock_value(db)
    assert value["total_sale_value"] == Decimal("110.00")
    assert value["total_purchase_value"] == Decimal("80.00")
    assert value["total_items"] == 15
