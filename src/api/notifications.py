"""Notification API — open/click tracking + admin queue management."""
from __future__ import annotations

import base64
import logging
from datetime import datetime
from typing import Any, Optional
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse, Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.auth import require_admin
from src.db.engine import get_session
from src.models.wishlist import NotificationStatus
from src.services.notifications import (
    NotificationQueue,
    NotificationValidationError,
    notification_to_dict,
)
from src.services.scheduler import process_notifications

logger = logging.getLogger(__name__)
router = APIRouter()

# 1x1 transparent GIF
_PIXEL = base64.b64decode("R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7")


def _safe_redirect_target(url: str | None) -> str:
    """Only redirect to relative paths or the configured site."""
    fallback = settings.SITE_URL or "/"
    if not url:
        return fallback
    parsed = urlparse(url)
    if not parsed.scheme and not parsed.netloc and url.startswith("/") and not url.startswith("//"):
        return url
    if settings.SITE_URL and parsed.netloc and parsed.netloc == urlparse(settings.SITE_URL).netloc:
        return url
    return fallback


# --- Public tracking endpoints (embedded in emails) ---

@router.get("/api/v1/notifications/{notification_id}/open")
async def track_open(notification_id: int, session: AsyncSession = Depends(get_session)):
    """Tracking pixel. Always returns the image so mail clients render cleanly."""
    await NotificationQueue(session).track_open(notification_id)
    return Response(content=_PIXEL, media_type="image/gif", headers={"Cache-Control": "no-store"})


@router.get("/api/v1/notifications/{notification_id}/click")
async def track_click(
    notification_id: int,
    url: Optional[str] = Query(None, max_length=2000),
    session: AsyncSession = Depends(get_session),
):
    await NotificationQueue(session).track_click(notification_id)
    return RedirectResponse(_safe_redirect_target(url), status_code=302)


# --- Admin ---

class QueueNotificationRequest(BaseModel):
    notification_type: str = Field(..., max_length=30)
    email_to: str = Field(..., max_length=200)
    data: dict[str, Any] = Field(default_factory=dict)
    scheduled_date: Optional[datetime] = None


@router.post("/api/v1/admin/notifications", status_code=201)
async def queue_notification(
    req: QueueNotificationRequest,
    admin=Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    data = dict(req.data)
    if req.scheduled_date is not None:
        data["scheduled_date"] = req.scheduled_date
    try:
        notification_id = await NotificationQueue(session).queue_notification(
            req.notification_type, req.email_to, data
        )
    except NotificationValidationError as e:
        raise HTTPException(400, {"error": e.code, "message": e.message})
    return {"id": notification_id, "status": NotificationStatus.PENDING.value}


@router.get("/api/v1/admin/notifications/stats")
async def notification_stats(admin=Depends(require_admin), session: AsyncSession = Depends(get_session)):
    return await NotificationQueue(session).get_statistics()


@router.post("/api/v1/admin/notifications/process")
async def process_queue_now(admin=Depends(require_admin)):
    """Drain one batch now (same job the scheduler runs)."""
    result = await process_notifications()
    if result is None:
        return {"status": "skipped"}
    return {"status": "completed", "sent": result.sent, "failed": result.failed, "errors": result.errors}


@router.get("/api/v1/admin/notifications")
async def list_user_notifications(
    user_id: int = Query(...),
    status: Optional[NotificationStatus] = Query(None),
    admin=Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    rows = await NotificationQueue(session).get_user_notifications(user_id, status)
    return {"notifications": [notification_to_dict(r) for r in rows], "count": len(rows)}


@router.get("/api/v1/admin/notifications/{notification_id}")
async def get_notification(
    notification_id: int,
    admin=Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    row = await NotificationQueue(session).get_notification(notification_id)
    if row is None:
        raise HTTPException(404, "Notification not found")
    return notification_to_dict(row)


@router.post("/api/v1/admin/notifications/{notification_id}/cancel")
async def cancel_notification(
    notification_id: int,
    admin=Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    if not await NotificationQueue(session).cancel(notification_id):
        raise HTTPException(409, "Only pending notifications can be cancelled")
    return {"status": NotificationStatus.CANCELLED.value}


@router.post("/api/v1/admin/notifications/{notification_id}/requeue")
async def requeue_notification(
    notification_id: int,
    admin=Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    if not await NotificationQueue(session).requeue(notification_id):
        raise HTTPException(409, "Only failed notifications with attempts left can be requeued")
    return {"status": NotificationStatus.PENDING.value}
