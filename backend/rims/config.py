# backend/rims/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB backing the store service
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///rims.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Ledger client -> store service
    STORE_URL = os.environ.get("RIMS_STORE_URL", "http://127.0.0.1:3001")
    STORE_TIMEOUT_SECONDS = float(os.environ.get("RIMS_STORE_TIMEOUT", "5"))
    # Local fallback cache file when the store service is unreachable (None = memory only)
    STORE_CACHE_PATH = os.environ.get("RIMS_STORE_CACHE_PATH")

    # "background" drains the outbox on a worker thread, "inline" drains synchronously
    SYNC_MODE = os.environ.get("RIMS_SYNC_MODE", "background")
    SYNC_MAX_ATTEMPTS = int(os.environ.get("RIMS_SYNC_MAX_ATTEMPTS", "5"))

    # Loyalty: spend (cents) required to earn one point, and value (cents) of one point
    LOYALTY_ENABLED = _env_bool("RIMS_LOYALTY_ENABLED", True)
    LOYALTY_EARN_RATE_CENTS = int(os.environ.get("RIMS_LOYALTY_EARN_RATE_CENTS", "100"))
    LOYALTY_REDEEM_VALUE_CENTS = int(os.environ.get("RIMS_LOYALTY_REDEEM_VALUE_CENTS", "1"))

    DEFAULT_USER_NAME = os.environ.get("RIMS_DEFAULT_USER", "Admin")
