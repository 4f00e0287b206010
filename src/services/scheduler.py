"""Scheduled pipeline jobs using APScheduler.

Jobs:
- process_notifications   every QUEUE_INTERVAL_MINUTES — drain the outbox
- check_price_drops       hourly — queue price-drop alerts
- check_back_in_stock     hourly — queue back-in-stock alerts
- recalculate_analytics   daily 03:00 UTC — reconcile wishlist counters
- cleanup_old_data        weekly, Sunday 04:00 UTC — retention sweep

Every job runs single-flight: APScheduler's ``max_instances=1`` covers
scheduled runs and a per-job asyncio.Lock covers manual triggers. A job logs
one summary line and never raises.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from config.settings import settings
from src.db import engine as db
from src.middleware.request_id import job_name_var
from src.services.catalog import build_product_lookup
from src.services.data_retention import run_retention_sweep
from src.services.mailer import DeliverySink, build_delivery_sink
from src.services.notifications import NotificationQueue
from src.services.stock_alerts import StockAlerts
from src.services.wishlist_analytics import WishlistAnalytics

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler(timezone="UTC")

_delivery_sink: Optional[DeliverySink] = None
_locks: dict[str, asyncio.Lock] = {}


def get_delivery_sink() -> DeliverySink:
    global _delivery_sink
    if _delivery_sink is None:
        _delivery_sink = build_delivery_sink()
    return _delivery_sink


def set_delivery_sink(sink: Optional[DeliverySink]) -> None:
    """Override the sink used by the queue-drain job (None = rebuild from settings)."""
    global _delivery_sink
    _delivery_sink = sink


async def _single_flight(name: str, job: Callable[[], Awaitable[Any]]) -> Any:
    lock = _locks.setdefault(name, asyncio.Lock())
    if lock.locked():
        logger.info("Job %s already running — skipped", name)
        return None
    async with lock:
        token = job_name_var.set(name)
        try:
            return await job()
        except Exception:
            logger.exception("Job %s failed", name)
            return None
        finally:
            job_name_var.reset(token)


# ── Jobs ──────────────────────────────────────────────────────────────────────

async def _process_notifications():
    async with db.async_session() as session:
        queue = NotificationQueue(session, sink=get_delivery_sink())
        result = await queue.process_queue(settings.QUEUE_BATCH_SIZE)
    logger.info(f"Notifications processed: {result.sent} sent, {result.failed} failed")
    return result


async def _check_price_drops():
    async with db.async_session() as session:
        alerts = StockAlerts(session, build_product_lookup(session), NotificationQueue(session))
        result = await alerts.check_price_drops()
    logger.info(
        f"Price drop check: {result.checked} items, "
        f"{result.notifications_queued} queued, {len(result.errors)} errors"
    )
    return result


async def _check_back_in_stock():
    async with db.async_session() as session:
        alerts = StockAlerts(session, build_product_lookup(session), NotificationQueue(session))
        result = await alerts.check_back_in_stock()
    logger.info(
        f"Back-in-stock check: {result.checked} items, "
        f"{result.notifications_queued} queued, {result.skipped} skipped, {len(result.errors)} errors"
    )
    return result


async def _recalculate_analytics():
    async with db.async_session() as session:
        result = await WishlistAnalytics(session).recalculate_all()
    logger.info(f"Analytics recalculated for {result.updated} products, {len(result.errors)} errors")
    return result


async def _cleanup_old_data():
    async with db.async_session() as session:
        return await run_retention_sweep(session)


async def process_notifications():
    return await _single_flight("process_notifications", _process_notifications)


async def check_price_drops():
    return await _single_flight("check_price_drops", _check_price_drops)


async def check_back_in_stock():
    return await _single_flight("check_back_in_stock", _check_back_in_stock)


async def recalculate_analytics():
    return await _single_flight("recalculate_analytics", _recalculate_analytics)


async def cleanup_old_data():
    return await _single_flight("cleanup_old_data", _cleanup_old_data)


@dataclass(frozen=True)
class JobSpec:
    func: Callable[[], Awaitable[Any]]
    label: str
    trigger: Callable[[], Any]


JOBS: dict[str, JobSpec] = {
    "process_notifications": JobSpec(
        process_notifications, "Process Notifications",
        lambda: IntervalTrigger(minutes=settings.QUEUE_INTERVAL_MINUTES),
    ),
    "check_price_drops": JobSpec(
        check_price_drops, "Check Price Drops", lambda: IntervalTrigger(hours=1),
    ),
    "check_back_in_stock": JobSpec(
        check_back_in_stock, "Check Back in Stock", lambda: IntervalTrigger(hours=1),
    ),
    "recalculate_analytics": JobSpec(
        recalculate_analytics, "Recalculate Analytics", lambda: CronTrigger(hour=3, minute=0),
    ),
    "cleanup_old_data": JobSpec(
        cleanup_old_data, "Cleanup Old Data", lambda: CronTrigger(day_of_week="sun", hour=4, minute=0),
    ),
}


async def trigger_job(name: str) -> Any:
    """Run a job immediately (admin/debug). Raises KeyError for unknown jobs."""
    if name not in JOBS:
        raise KeyError(name)
    logger.info("Manually triggering job %s", name)
    return await JOBS[name].func()


def get_job_status() -> list[dict]:
    """Schedule state of every pipeline job."""
    status = []
    for name, spec in JOBS.items():
        job = scheduler.get_job(name)
        next_run = getattr(job, "next_run_time", None) if job else None
        status.append({
            "job": name,
            "label": spec.label,
            "scheduled": job is not None,
            "next_run": next_run.isoformat() if next_run else None,
        })
    return status


def start_scheduler():
    """Register all pipeline jobs and start the background scheduler."""
    for name, spec in JOBS.items():
        scheduler.add_job(
            spec.func,
            trigger=spec.trigger(),
            id=name,
            name=spec.label,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
    scheduler.start()
    logger.info(f"Scheduler started — {len(JOBS)} jobs, queue drain every {settings.QUEUE_INTERVAL_MINUTES}m")


def stop_scheduler():
    """Gracefully shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
