"""
Wishlist Notification Queue
---
Outbound email notifications with a status lifecycle:

    pending ──dispatch──> sent
       │         └──────> failed ──requeue──> pending   (while attempts < 3)
       └──cancel────────> cancelled

Subject and body are rendered when a notification is queued. ``attempts`` is
incremented and committed *before* the delivery call, so a crash mid-send
still counts against the retry cap. A failed delivery is recorded on the row
and never re-enters the queue on its own; retry is an explicit ``requeue``.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional

from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy import case, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.db.tables import NotificationRow, utcnow
from src.models.wishlist import NotificationStatus, NotificationType, TERMINAL_STATUSES
from src.services.mailer import DeliverySink
from src.services.notification_content import generate_email_content

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
DEFAULT_NOTIFICATION_RETENTION_DAYS = 90
USER_NOTIFICATIONS_LIMIT = 100

_email_adapter = TypeAdapter(EmailStr)


class NotificationValidationError(ValueError):
    """Rejected at enqueue time — nothing is persisted."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass
class DispatchResult:
    ok: bool
    error: Optional[str] = None


@dataclass
class QueueRunResult:
    sent: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


def _as_naive_utc(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            raise NotificationValidationError("invalid_data", f"Invalid scheduled_date: {value!r}")
    if not isinstance(value, datetime):
        raise NotificationValidationError("invalid_data", f"Invalid scheduled_date: {value!r}")
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _optional_int(value: Any, field_name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise NotificationValidationError("invalid_data", f"Invalid {field_name}: {value!r}")


def validate_email(email_to: str) -> str:
    try:
        return str(_email_adapter.validate_python(email_to))
    except ValidationError:
        raise NotificationValidationError("invalid_email", "Invalid email address")


def notification_to_dict(row: NotificationRow) -> dict:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "wishlist_id": row.wishlist_id,
        "product_id": row.product_id,
        "notification_type": row.notification_type,
        "email_to": row.email_to,
        "email_subject": row.email_subject,
        "email_content": row.email_content,
        "trigger_data": row.trigger_data,
        "scheduled_date": row.scheduled_date,
        "sent_date": row.sent_date,
        "opened_date": row.opened_date,
        "clicked_date": row.clicked_date,
        "status": row.status,
        "attempts": row.attempts,
        "error_message": row.error_message,
        "created_at": row.created_at,
    }


class NotificationQueue:
    """Persistent notification outbox backed by the wishlist_notifications table."""

    def __init__(
        self,
        session: AsyncSession,
        sink: DeliverySink | None = None,
        clock: Callable[[], datetime] = utcnow,
        site_name: str | None = None,
        send_timeout: float | None = None,
    ):
        self.session = session
        self.sink = sink
        self.clock = clock
        self.site_name = site_name or settings.SITE_NAME
        self.send_timeout = send_timeout or settings.MAIL_SEND_TIMEOUT_SECONDS

    # ── Enqueue ──────────────────────────────────────────────────────────────

    async def queue_notification(
        self,
        notification_type: NotificationType | str,
        email_to: str,
        data: Mapping[str, Any] | None = None,
    ) -> int:
        """Validate, render and persist a pending notification. Returns its id."""
        try:
            ntype = NotificationType(notification_type)
        except ValueError:
            raise NotificationValidationError("invalid_type", "Invalid notification type")
        email_to = validate_email(email_to)

        data = dict(data or {})
        ids = {key: _optional_int(data.get(key), key) for key in ("user_id", "wishlist_id", "product_id")}
        scheduled = _as_naive_utc(data.get("scheduled_date")) or self.clock()
        email = generate_email_content(ntype, data, self.site_name)

        row = NotificationRow(
            **ids,
            notification_type=ntype.value,
            email_to=email_to,
            email_subject=email.subject,
            email_content=email.content,
            trigger_data=data.get("trigger_data"),
            scheduled_date=scheduled,
            status=NotificationStatus.PENDING.value,
            attempts=0,
            created_at=self.clock(),
        )
        self.session.add(row)
        await self.session.commit()
        logger.debug("Queued %s notification %s for %s", ntype.value, row.id, email_to)
        return row.id

    # ── Dispatch ─────────────────────────────────────────────────────────────

    async def dequeue_batch(self, limit: int = 10) -> list[NotificationRow]:
        """Oldest-first batch of records eligible for delivery."""
        result = await self.session.execute(
            select(NotificationRow)
            .where(
                NotificationRow.status == NotificationStatus.PENDING.value,
                NotificationRow.scheduled_date <= self.clock(),
                NotificationRow.attempts < MAX_ATTEMPTS,
            )
            .order_by(NotificationRow.scheduled_date.asc(), NotificationRow.id.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def _deliver(self, row: NotificationRow) -> DispatchResult:
        if self.sink is None:
            return DispatchResult(False, "No delivery sink configured")
        try:
            ok = await asyncio.wait_for(
                self.sink.send(row.email_to, row.email_subject, row.email_content),
                timeout=self.send_timeout,
            )
        except asyncio.TimeoutError:
            return DispatchResult(False, f"Delivery timed out after {self.send_timeout:g}s")
        except Exception as e:
            return DispatchResult(False, f"{type(e).__name__}: {e}")
        if not ok:
            return DispatchResult(False, "Failed to send email")
        return DispatchResult(True)

    async def dispatch(self, notification_id: int) -> DispatchResult:
        """Attempt delivery of one pending notification. Never raises on delivery failure."""
        row = await self.get_notification(notification_id)
        if row is None:
            return DispatchResult(False, "Notification not found")
        if row.status != NotificationStatus.PENDING.value:
            return DispatchResult(False, f"Notification is {row.status}, not pending")

        row.attempts = (row.attempts or 0) + 1
        await self.session.commit()

        outcome = await self._deliver(row)
        if outcome.ok:
            row.status = NotificationStatus.SENT.value
            row.sent_date = self.clock()
            row.error_message = None
        else:
            row.status = NotificationStatus.FAILED.value
            row.error_message = outcome.error
            logger.warning("Notification %s delivery failed: %s", notification_id, outcome.error)
        await self.session.commit()
        return outcome

    async def process_queue(self, limit: int = 10) -> QueueRunResult:
        """Drain one batch. A single record's failure never aborts the rest."""
        results = QueueRunResult()
        batch_ids = [row.id for row in await self.dequeue_batch(limit)]
        for notification_id in batch_ids:
            try:
                outcome = await self.dispatch(notification_id)
            except Exception as e:
                await self.session.rollback()
                outcome = DispatchResult(False, str(e))
                logger.exception("Notification %s dispatch crashed", notification_id)
            if outcome.ok:
                results.sent += 1
            else:
                results.failed += 1
                results.errors.append(f"Notification {notification_id} failed: {outcome.error}")
        return results

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def _stamp(self, notification_id: int, attr: str) -> bool:
        row = await self.get_notification(notification_id)
        if row is None:
            return False
        if getattr(row, attr) is None:
            setattr(row, attr, self.clock())
            await self.session.commit()
        return True

    async def track_open(self, notification_id: int) -> bool:
        return await self._stamp(notification_id, "opened_date")

    async def track_click(self, notification_id: int) -> bool:
        return await self._stamp(notification_id, "clicked_date")

    async def cancel(self, notification_id: int) -> bool:
        """Cancel a notification that has not been dispatched yet."""
        row = await self.get_notification(notification_id)
        if row is None or row.status != NotificationStatus.PENDING.value:
            return False
        row.status = NotificationStatus.CANCELLED.value
        await self.session.commit()
        return True

    async def requeue(self, notification_id: int) -> bool:
        """Put a failed notification back in the queue if it has attempts left."""
        row = await self.get_notification(notification_id)
        if row is None or row.status != NotificationStatus.FAILED.value:
            return False
        if (row.attempts or 0) >= MAX_ATTEMPTS:
            return False
        row.status = NotificationStatus.PENDING.value
        row.error_message = None
        row.scheduled_date = self.clock()
        await self.session.commit()
        return True

    async def cleanup(
        self, retention_days: int = DEFAULT_NOTIFICATION_RETENTION_DAYS, dry_run: bool = False
    ) -> int:
        """Purge finished notifications older than the retention window.

        Pending notifications are never purged. With ``dry_run`` only counts.
        """
        cutoff = self.clock() - timedelta(days=retention_days)
        expired = (
            NotificationRow.status.in_([s.value for s in TERMINAL_STATUSES]),
            NotificationRow.created_at < cutoff,
        )
        if dry_run:
            return (await self.session.execute(
                select(func.count(NotificationRow.id)).where(*expired)
            )).scalar() or 0

        result = await self.session.execute(delete(NotificationRow).where(*expired))
        await self.session.commit()
        return result.rowcount or 0

    # ── Queries ──────────────────────────────────────────────────────────────

    async def get_notification(self, notification_id: int) -> Optional[NotificationRow]:
        return (await self.session.execute(
            select(NotificationRow).where(NotificationRow.id == notification_id)
        )).scalar_one_or_none()

    async def get_user_notifications(
        self, user_id: int, status: NotificationStatus | str | None = None
    ) -> list[NotificationRow]:
        stmt = select(NotificationRow).where(NotificationRow.user_id == user_id)
        if status:
            stmt = stmt.where(NotificationRow.status == NotificationStatus(status).value)
        stmt = stmt.order_by(NotificationRow.created_at.desc(), NotificationRow.id.desc())
        return list((await self.session.execute(stmt.limit(USER_NOTIFICATIONS_LIMIT))).scalars().all())

    async def has_recent(
        self,
        product_id: int,
        notification_type: NotificationType | str,
        days: int,
        user_id: int | None = None,
        email_to: str | None = None,
    ) -> bool:
        """True if this recipient already got this type of notification for this product within ``days``.

        Recipients are matched by user id, or by address for guest wishlists.
        """
        since = self.clock() - timedelta(days=days)
        if user_id is not None:
            recipient = NotificationRow.user_id == user_id
        else:
            recipient = NotificationRow.email_to == email_to
        count = (await self.session.execute(
            select(func.count(NotificationRow.id)).where(
                recipient,
                NotificationRow.product_id == product_id,
                NotificationRow.notification_type == NotificationType(notification_type).value,
                NotificationRow.created_at > since,
            )
        )).scalar() or 0
        return count > 0

    async def get_statistics(self) -> dict:
        def _count_where(condition):
            return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

        row = (await self.session.execute(
            select(
                func.count(NotificationRow.id).label("total"),
                _count_where(NotificationRow.status == NotificationStatus.SENT.value).label("sent"),
                _count_where(NotificationRow.status == NotificationStatus.PENDING.value).label("pending"),
                _count_where(NotificationRow.status == NotificationStatus.FAILED.value).label("failed"),
                _count_where(NotificationRow.status == NotificationStatus.CANCELLED.value).label("cancelled"),
                _count_where(NotificationRow.opened_date.is_not(None)).label("opened"),
                _count_where(NotificationRow.clicked_date.is_not(None)).label("clicked"),
            )
        )).one()

        sent = int(row.sent)
        return {
            "total_notifications": int(row.total),
            "sent_count": sent,
            "pending_count": int(row.pending),
            "failed_count": int(row.failed),
            "cancelled_count": int(row.cancelled),
            "opened_count": int(row.opened),
            "clicked_count": int(row.clicked),
            "open_rate": round(int(row.opened) / sent * 100, 2) if sent else 0,
            "click_rate": round(int(row.clicked) / sent * 100, 2) if sent else 0,
        }
