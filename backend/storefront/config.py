# backend/storefront/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Signs the auth credential; falls back to SECRET_KEY
    JWT_SECRET = os.environ.get("JWT_SECRET") or SECRET_KEY

    # SQLite DB stored next to the app by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///storefront.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Sessions: one active session per user, fixed TTL refreshed on verify
    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "2"))
    AUTH_COOKIE_NAME = "auth_token"
    AUTH_COOKIE_SECURE = _env_flag("AUTH_COOKIE_SECURE")
    AUTH_COOKIE_SAMESITE = os.environ.get("AUTH_COOKIE_SAMESITE", "Lax")

    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:5174",
        ).split(",")
        if origin.strip()
    ]

    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "PHP")

    # Quotes lapse to EXPIRED after this many days unless the admin sets a date
    QUOTE_VALIDITY_DAYS = int(os.environ.get("QUOTE_VALIDITY_DAYS", "30"))

    # When true, cancelling/rejecting an RFQ puts its folded cart lines back
    RESTORE_CART_ON_RFQ_CANCEL = _env_flag("RESTORE_CART_ON_RFQ_CANCEL")

    # CAS retries before a unit reservation gives up as out of stock
    RESERVE_MAX_ATTEMPTS = 5
