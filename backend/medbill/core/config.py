"""Application configuration for the billing engine.

Environment variables override all defaults.
The bill prefix and fiscal year only seed the bill_sequence row on first start;
after that the persisted row is the source of truth.
"""

import os
from datetime import date
from pathlib import Path
from typing import List


# Load .env for local development (safe no-op if not installed)
try:
    from dotenv import load_dotenv  # type: ignore

    _BACKEND_DIR = Path(__file__).resolve().parents[2]
    load_dotenv(dotenv_path=_BACKEND_DIR / ".env", override=False)
except ImportError:
    pass


def current_financial_year(today: date | None = None) -> str:
    """Indian fiscal year (April to March) as '2024-25'."""
    today = today or date.today()
    start = today.year if today.month >= 4 else today.year - 1
    return f"{start}-{str(start + 1)[-2:]}"


def _split_csv(raw: str, default: List[str]) -> List[str]:
    parts = [p.strip() for p in (raw or "").split(",")]
    return [p for p in parts if p] or default


class Settings:
    # Database Configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./medbill.db")

    # Bill numbering (seed values for the singleton sequence row)
    BILL_PREFIX: str = os.getenv("BILL_PREFIX", "INV")
    FINANCIAL_YEAR: str = os.getenv("FINANCIAL_YEAR", "") or current_financial_year()

    # Stock alerts
    EXPIRY_ALERT_DAYS: int = int(os.getenv("EXPIRY_ALERT_DAYS", "30"))
    NON_MOVING_DAYS: int = int(os.getenv("NON_MOVING_DAYS", "30"))
    DEFAULT_TABLETS_PER_STRIP: int = int(os.getenv("DEFAULT_TABLETS_PER_STRIP", "10"))

    # Transient lock retries (whole transaction is retried, never business errors)
    DB_LOCK_RETRIES: int = int(os.getenv("DB_LOCK_RETRIES", "3"))
    DB_LOCK_RETRY_BACKOFF_SECONDS: float = float(os.getenv("DB_LOCK_RETRY_BACKOFF_SECONDS", "0.05"))

    # CORS (the till UI runs locally)
    CORS_ORIGINS: List[str] = _split_csv(
        os.getenv("CORS_ORIGINS", ""),
        default=[
            "http://localhost:1420",
            "http://127.0.0.1:1420",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
    )

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = ENVIRONMENT == "development"


settings = Settings()
