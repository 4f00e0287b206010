"""Admin API-key authentication for operator endpoints."""
from __future__ import annotations

import hmac

from fastapi import Header, HTTPException

from config.settings import settings


def require_admin(x_admin_key: str | None = Header(None)) -> None:
    """Verify the admin API key (timing-safe)."""
    expected = settings.ADMIN_API_KEY
    if not expected:
        raise HTTPException(503, "Admin endpoints disabled")
    if not x_admin_key or not hmac.compare_digest(x_admin_key, expected):
        raise HTTPException(403, "Invalid admin key")
