"""
Shared fixtures: one in-memory SQLite database per test.

StaticPool keeps a single connection so every session (fixture, route,
unit_of_work) sees the same database. Commit fixture data before calling the
API: a route session returning the connection to the pool rolls back anything
left uncommitted.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from medbill import models  # noqa: F401 - register models
from medbill.api.deps import get_db, get_session_factory
from medbill.db.base import Base
from medbill.main import app
from medbill.models.enums import PriceType
from medbill.services import inventory_service, ledger_service
from medbill.services.sequence_service import initialize_sequence

FINANCIAL_YEAR = "2024-25"


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(eng, "connect")
    def _fk_on(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    initialize_sequence(session, "INV", FINANCIAL_YEAR)
    session.commit()
    yield session
    session.close()


@pytest.fixture
def make_batch(db):
    """Create a medicine with one batch and commit. Returns the batch id."""
    counter = {"n": 0}

    def _make(
        name="Paracetamol 500mg",
        gst_rate=12,
        selling_price="32.00",
        quantity=100,
        price_type=PriceType.INCLUSIVE,
        is_schedule=False,
        expiry_date=None,
        tablets_per_strip=10,
        purchase_price="0",
    ):
        counter["n"] += 1
        med = inventory_service.create_medicine(
            db, name=name, gst_rate=gst_rate, is_schedule=is_schedule
        )
        batch_id = inventory_service.create_batch(
            db,
            med.id,
            f"B{counter['n']:03d}",
            expiry_date or date.today() + timedelta(days=365),
            selling_price,
            purchase_price=purchase_price,
            price_type=price_type,
            quantity=quantity,
            tablets_per_strip=tablets_per_strip,
        )
        db.commit()
        return batch_id

    return _make


@pytest.fixture
def customer(db):
    c = ledger_service.create_customer(db, "Ramesh Kumar", phone="9876543210")
    db.commit()
    return c


@pytest.fixture
def client(db, session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    # No context manager: the lifespan would initialise the configured database.
    yield TestClient(app)
    app.dependency_overrides.clear()
