# backend/gympos/config.py
from __future__ import annotations
import os
from decimal import Decimal


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/gympos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///gympos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Platform fee charged to the gym for every month of service sold
    PLATFORM_FEE_PER_TRANSACTION = Decimal(os.environ.get("PLATFORM_FEE_PER_TRANSACTION", "5000"))

    # Legacy fee schedule emitted one extra month per sale; off unless explicitly enabled
    GYM_INVOICE_INCLUDE_EXTRA_MONTH = _env_bool("GYM_INVOICE_INCLUDE_EXTRA_MONTH", False)

    # Withdrawal fee in basis points (250 = 2.5%)
    WALLET_WITHDRAWAL_FEE_BPS = int(os.environ.get("WALLET_WITHDRAWAL_FEE_BPS", "250"))
    WALLET_MIN_WITHDRAWAL = Decimal(os.environ.get("WALLET_MIN_WITHDRAWAL", "10000"))

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))

    DEFAULT_PAGE_SIZE = 10
    MAX_PAGE_SIZE = 100

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    ]
