"""
MedBill Backend: pharmacy point-of-sale billing engine.

ARCHITECTURE:
- FastAPI: HTTP surface for the till UI
- Services: GST calculation, bill numbering, stock and credit ledgers,
  the billing coordinator and running-bill reconciliation
- SQLite DB (default): source of truth for all state

MONEY MODEL:
- Every sale is one unit of work: bill, stock deduction and credit entry
  commit together or not at all
- Transient lock errors retry the whole transaction; business errors never do
"""
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from medbill.api.routes import billing, customers, inventory, running_bills
from medbill.core.audit import AuditLog
from medbill.core.config import settings
from medbill.core.exceptions import BillingError, BusinessError
from medbill.db.init_db import init_db

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
    1. Create tables
    2. Seed / roll over the bill sequence for the configured fiscal year
    """
    logger.info("Initializing database...")
    init_db()
    logger.info(f"Database initialized ({settings.ENVIRONMENT})")
    yield


app = FastAPI(
    title="MedBill API",
    description="Pharmacy billing: GST invoices, stock, udhar ledger, running bills.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin"],
    max_age=600,
)


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError):
    http_exc = BusinessError.from_billing_error(exc)
    return JSONResponse(status_code=http_exc.status_code, content=http_exc.detail)


@app.middleware("http")
async def audit_api_calls(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    if request.method != "GET":
        AuditLog.log_api_call(
            request.url.path,
            request.method,
            status_code=response.status_code,
            duration_ms=(time.perf_counter() - started) * 1000,
        )
    return response


app.include_router(billing.router, prefix="/billing", tags=["billing"])
app.include_router(inventory.router, prefix="/inventory", tags=["inventory"])
app.include_router(running_bills.router, prefix="/running-bills", tags=["running-bills"])
app.include_router(customers.router, prefix="/customers", tags=["customers"])


@app.get("/health")
def health():
    return {"status": "ok", "environment": settings.ENVIRONMENT}
