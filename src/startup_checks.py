"""Startup validation — catch misconfigurations before the app serves traffic."""
from __future__ import annotations

import logging

from config.settings import settings

logger = logging.getLogger(__name__)


def validate_settings() -> list[str]:
    """Validate configuration. Returns list of warnings (empty = all good)."""
    warnings: list[str] = []
    is_prod = settings.DATABASE_URL and "sqlite" not in settings.DATABASE_URL

    if is_prod and "*" in settings.CORS_ORIGINS:
        warnings.append("CORS_ORIGINS is set to * — restrict in production")

    if not settings.ADMIN_API_KEY:
        warnings.append("ADMIN_API_KEY not set — admin endpoints disabled")

    if not settings.SMTP_HOST:
        warnings.append("SMTP_HOST not set — notifications are logged, not emailed")

    if not settings.STORE_API_BASE:
        warnings.append("STORE_API_BASE not set — price/stock checks use the local products table")

    if not settings.SITE_URL:
        warnings.append("SITE_URL not set — click tracking redirects to relative paths only")

    if settings.QUEUE_BATCH_SIZE < 1:
        warnings.append("QUEUE_BATCH_SIZE < 1 — the notification queue will never drain")

    for w in warnings:
        logger.warning("⚠️  %s", w)

    if not warnings:
        logger.info("✅ All startup checks passed")

    return warnings
