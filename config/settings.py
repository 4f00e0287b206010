"""App settings — loaded from environment."""
from __future__ import annotations

import os
from dotenv import load_dotenv

load_dotenv()


def _bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    # API
    API_HOST = os.getenv("API_HOST", "0.0.0.0")
    API_PORT = int(os.getenv("API_PORT", "8000"))

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///wishcart.db")

    # Site identity (used in email footers and click-tracking redirects)
    SITE_NAME = os.getenv("SITE_NAME", "WishCart")
    SITE_URL = os.getenv("SITE_URL", "")

    # Store catalogue API (product lookups for price / stock checks)
    STORE_API_BASE = os.getenv("STORE_API_BASE", "")
    STORE_API_KEY = os.getenv("STORE_API_KEY", "")
    STORE_API_TIMEOUT_SECONDS = float(os.getenv("STORE_API_TIMEOUT_SECONDS", "10"))

    # SMTP delivery
    SMTP_HOST = os.getenv("SMTP_HOST", "")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
    SMTP_FROM = os.getenv("SMTP_FROM", "wishlist@localhost")
    SMTP_USE_TLS = _bool(os.getenv("SMTP_USE_TLS", "true"))
    MAIL_SEND_TIMEOUT_SECONDS = float(os.getenv("MAIL_SEND_TIMEOUT_SECONDS", "30"))

    # Notification queue
    QUEUE_BATCH_SIZE = int(os.getenv("QUEUE_BATCH_SIZE", "10"))
    QUEUE_INTERVAL_MINUTES = int(os.getenv("QUEUE_INTERVAL_MINUTES", "5"))
    BACK_IN_STOCK_DEDUP_DAYS = int(os.getenv("BACK_IN_STOCK_DEDUP_DAYS", "7"))

    # Retention windows
    NOTIFICATION_RETENTION_DAYS = int(os.getenv("NOTIFICATION_RETENTION_DAYS", "90"))
    ANALYTICS_RETENTION_DAYS = int(os.getenv("ANALYTICS_RETENTION_DAYS", "365"))

    # Background jobs
    SCHEDULER_ENABLED = _bool(os.getenv("SCHEDULER_ENABLED", "true"))

    # Admin API key (for protected admin endpoints)
    ADMIN_API_KEY = os.getenv("ADMIN_API_KEY", "")

    # CORS origins (comma-separated, or * for dev)
    CORS_ORIGINS = [
        o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")
    ]

    # Observability
    SENTRY_DSN = os.getenv("SENTRY_DSN", "")
    SENTRY_ENVIRONMENT = os.getenv("SENTRY_ENVIRONMENT", "development")
    SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1"))

    # Logging
    LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
