"""
Wishlist Data Retention Service
---
Weekly lifecycle sweep for the pipeline's own tables.

Handles:
- Analytics counter pruning (products nobody wishlists, untouched for 12 months)
- Notification pruning (sent / failed / cancelled, older than 90 days)

Run via: scheduled task (weekly) or manual admin trigger.

Endpoints:
- POST /api/v1/admin/retention/run       — Trigger retention sweep
- GET  /api/v1/admin/retention/preview    — Preview what would be purged (dry run)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.auth import require_admin
from src.db.engine import get_session
from src.services.notifications import NotificationQueue
from src.services.wishlist_analytics import WishlistAnalytics

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/admin/retention", tags=["admin", "retention"])


@dataclass
class RetentionResult:
    """Results from a retention sweep."""
    analytics_rows_pruned: int = 0
    notifications_pruned: int = 0
    errors: list[str] = field(default_factory=list)
    dry_run: bool = False
    started_at: str = ""
    completed_at: str = ""
    duration_ms: int = 0


async def run_retention_sweep(
    session: AsyncSession,
    dry_run: bool = False,
    analytics_retention_days: int | None = None,
    notification_retention_days: int | None = None,
) -> RetentionResult:
    """Execute full retention sweep. Core function used by both API and scheduler."""
    analytics_days = analytics_retention_days or settings.ANALYTICS_RETENTION_DAYS
    notification_days = notification_retention_days or settings.NOTIFICATION_RETENTION_DAYS

    start = datetime.now(timezone.utc)
    result = RetentionResult(dry_run=dry_run, started_at=start.isoformat())

    # 1. Stale analytics counters
    try:
        result.analytics_rows_pruned = await WishlistAnalytics(session).cleanup(
            analytics_days, dry_run=dry_run
        )
    except Exception as e:
        await session.rollback()
        result.errors.append(f"analytics_prune: {e}")
        logger.error(f"Retention: analytics prune failed: {e}")

    # 2. Finished notifications
    try:
        result.notifications_pruned = await NotificationQueue(session).cleanup(
            notification_days, dry_run=dry_run
        )
    except Exception as e:
        await session.rollback()
        result.errors.append(f"notification_prune: {e}")
        logger.error(f"Retention: notification prune failed: {e}")

    end = datetime.now(timezone.utc)
    result.completed_at = end.isoformat()
    result.duration_ms = int((end - start).total_seconds() * 1000)

    logger.info(
        f"Retention sweep {'(DRY RUN) ' if dry_run else ''}"
        f"completed in {result.duration_ms}ms: "
        f"analytics={result.analytics_rows_pruned} "
        f"notifications={result.notifications_pruned}"
    )

    return result


def _summary(result: RetentionResult) -> dict:
    return {
        "analytics_rows_pruned": result.analytics_rows_pruned,
        "notifications_pruned": result.notifications_pruned,
        "errors": result.errors,
        "duration_ms": result.duration_ms,
    }


# ── API Endpoints ─────────────────────────────────────────────────────────────

@router.post("/run")
async def trigger_retention_sweep(
    dry_run: bool = Query(False, description="Preview only, don't actually delete"),
    admin=Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Trigger a data retention sweep. Pass ?dry_run=true to preview."""
    result = await run_retention_sweep(session, dry_run=dry_run)
    return {"status": "preview" if dry_run else "completed", "result": _summary(result)}


@router.get("/preview")
async def preview_retention(
    admin=Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Preview what a retention sweep would purge without deleting anything."""
    result = await run_retention_sweep(session, dry_run=True)
    return {"status": "preview", "would_affect": _summary(result)}
