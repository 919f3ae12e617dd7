# backend/vitis/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_csv(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/vitis.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///vitis.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    # Session lifetime
    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", "24"))
    SESSION_IDLE_TIMEOUT_HOURS = int(os.environ.get("SESSION_IDLE_TIMEOUT_HOURS", "2"))

    # Alert banding: stock at or below min_stock * ratio is High, otherwise Medium
    ALERT_HIGH_RATIO = float(os.environ.get("ALERT_HIGH_RATIO", "0.8"))

    # Stock digest mail transport
    SMTP_HOST = os.environ.get("SMTP_HOST", "smtp.gmail.com")
    SMTP_PORT = int(os.environ.get("SMTP_PORT", "587"))
    SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", True)
    EMAIL_USER = os.environ.get("EMAIL_USER")
    EMAIL_PASS = os.environ.get("EMAIL_PASS")
    ALERT_EMAIL = os.environ.get("ALERT_EMAIL")

    # Digest schedule (local hours in DIGEST_TIMEZONE)
    DIGEST_TIMEZONE = os.environ.get("DIGEST_TIMEZONE", "America/Bogota")
    DIGEST_HOURS = [int(h) for h in _env_csv("DIGEST_HOURS", "8,12")]
    DIGEST_PRODUCT_LIMIT = int(os.environ.get("DIGEST_PRODUCT_LIMIT", "10"))

    CORS_ALLOWED_ORIGINS = _env_csv(
        "CORS_ALLOWED_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
    )
