"""
Wishlist Analytics — per-product event counters
---
One counter row per (product, variation), created lazily on the first event.

Hot-path events (add, remove, click, cart, purchase, share) adjust counters
incrementally. ``wishlist_count`` drifts when items disappear without a
tracked "remove", so the daily ``recalculate_all`` job reconciles it against
the live wishlist_items table.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.tables import WishlistAnalyticsRow, WishlistItemRow, WishlistRow, utcnow
from src.models.wishlist import EventType, ItemStatus
from src.services.catalog import ProductLookup

logger = logging.getLogger(__name__)

# Fields the popular-products report may be ordered by
POPULAR_ORDER_FIELDS = (
    "wishlist_count",
    "conversion_rate",
    "share_count",
    "add_to_cart_count",
    "purchase_count",
)

DEFAULT_ANALYTICS_RETENTION_DAYS = 365


@dataclass
class RecalculationResult:
    updated: int = 0
    errors: list[str] = field(default_factory=list)


def conversion_rate(purchase_count: int, wishlist_count: int) -> Optional[float]:
    """Purchases per wishlist add, as a percentage. None when undefined."""
    if wishlist_count <= 0:
        return None
    return round(purchase_count / wishlist_count * 100, 2)


def _rate(numerator: int, denominator: int) -> float:
    return round(numerator / denominator * 100, 2) if denominator > 0 else 0


def _row_to_dict(row: WishlistAnalyticsRow) -> dict:
    return {
        "product_id": row.product_id,
        "variation_id": row.variation_id,
        "wishlist_count": row.wishlist_count,
        "click_count": row.click_count,
        "add_to_cart_count": row.add_to_cart_count,
        "purchase_count": row.purchase_count,
        "share_count": row.share_count,
        "conversion_rate": float(row.conversion_rate or 0),
        "average_days_in_wishlist": float(row.average_days_in_wishlist or 0),
        "first_added_date": row.first_added_date,
        "last_added_date": row.last_added_date,
        "last_purchased_date": row.last_purchased_date,
        "updated_at": row.updated_at,
    }


class WishlistAnalytics:
    """Event counter store backed by the wishlist_analytics table."""

    def __init__(
        self,
        session: AsyncSession,
        products: ProductLookup | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.products = products
        self.clock = clock

    async def _get_row(self, product_id: int, variation_id: int) -> Optional[WishlistAnalyticsRow]:
        result = await self.session.execute(
            select(WishlistAnalyticsRow).where(
                WishlistAnalyticsRow.product_id == product_id,
                WishlistAnalyticsRow.variation_id == variation_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_or_create(self, product_id: int, variation_id: int = 0) -> WishlistAnalyticsRow:
        row = await self._get_row(product_id, variation_id)
        if row is not None:
            return row

        now = self.clock()
        row = WishlistAnalyticsRow(
            product_id=product_id,
            variation_id=variation_id,
            wishlist_count=0,
            click_count=0,
            add_to_cart_count=0,
            purchase_count=0,
            share_count=0,
            average_days_in_wishlist=0.0,
            conversion_rate=0.0,
            created_at=now,
            updated_at=now,
        )
        self.session.add(row)
        try:
            await self.session.commit()
        except IntegrityError:
            # Another writer created it first
            await self.session.rollback()
            row = await self._get_row(product_id, variation_id)
            if row is None:
                raise
        return row

    async def track_event(
        self, product_id: int, variation_id: int = 0, event_type: EventType | str = EventType.VIEW
    ) -> bool:
        """Apply one event to the product's counters. Unknown event types are rejected."""
        try:
            event = EventType(event_type)
        except ValueError:
            logger.debug("Ignoring unknown analytics event %r for product %s", event_type, product_id)
            return False

        row = await self.get_or_create(product_id, variation_id)
        now = self.clock()

        if event is EventType.ADD:
            row.wishlist_count = row.wishlist_count + 1
            row.last_added_date = now
            if row.first_added_date is None:
                row.first_added_date = now
        elif event is EventType.REMOVE:
            row.wishlist_count = max(0, row.wishlist_count - 1)
        elif event in (EventType.VIEW, EventType.CLICK):
            row.click_count = row.click_count + 1
        elif event is EventType.CART:
            row.add_to_cart_count = row.add_to_cart_count + 1
        elif event is EventType.PURCHASE:
            row.purchase_count = row.purchase_count + 1
            row.last_purchased_date = now
        elif event is EventType.SHARE:
            row.share_count = row.share_count + 1

        if event in (EventType.ADD, EventType.REMOVE, EventType.PURCHASE):
            rate = conversion_rate(row.purchase_count, row.wishlist_count)
            if rate is not None:
                row.conversion_rate = rate

        row.updated_at = now
        await self.session.commit()
        return True

    async def calculate_average_days(self, product_id: int, variation_id: int = 0) -> bool:
        """Mean days an item sat in a wishlist before reaching the cart (or purchase)."""
        result = await self.session.execute(
            select(WishlistItemRow.date_added, WishlistItemRow.date_added_to_cart).where(
                WishlistItemRow.product_id == product_id,
                WishlistItemRow.variation_id == variation_id,
                (WishlistItemRow.date_added_to_cart.is_not(None))
                | (WishlistItemRow.status == ItemStatus.PURCHASED.value),
            )
        )
        rows = result.all()
        if not rows:
            return False

        today = self.clock().date()
        samples = []
        for date_added, date_added_to_cart in rows:
            if date_added is None:
                continue
            end = date_added_to_cart.date() if date_added_to_cart else today
            days = (end - date_added.date()).days
            if days >= 0:
                samples.append(days)

        if not samples:
            return False

        average = round(sum(samples) / len(samples), 2)
        await self.session.execute(
            update(WishlistAnalyticsRow)
            .where(
                WishlistAnalyticsRow.product_id == product_id,
                WishlistAnalyticsRow.variation_id == variation_id,
            )
            .values(average_days_in_wishlist=average)
        )
        await self.session.commit()
        return True

    async def recalculate_all(self) -> RecalculationResult:
        """Reconcile every counter row against the live item table. Idempotent."""
        results = RecalculationResult()

        pairs = (await self.session.execute(
            select(WishlistAnalyticsRow.product_id, WishlistAnalyticsRow.variation_id).distinct()
        )).all()

        for product_id, variation_id in pairs:
            try:
                live_count = (await self.session.execute(
                    select(func.count(WishlistItemRow.id)).where(
                        WishlistItemRow.product_id == product_id,
                        WishlistItemRow.variation_id == variation_id,
                        WishlistItemRow.status == ItemStatus.ACTIVE.value,
                    )
                )).scalar() or 0

                row = await self._get_row(product_id, variation_id)
                if row is None:
                    # Deleted by a concurrent cleanup
                    continue
                rate = conversion_rate(row.purchase_count, live_count) or 0
                # updated_at only moves on a real change, retention keys off it
                if row.wishlist_count != live_count or (row.conversion_rate or 0) != rate:
                    row.wishlist_count = live_count
                    row.conversion_rate = rate
                    row.updated_at = self.clock()
                await self.session.commit()
                results.updated += 1

                await self.calculate_average_days(product_id, variation_id)
            except Exception as e:
                await self.session.rollback()
                results.errors.append(f"Failed to update product {product_id}: {e}")
                logger.warning("Analytics recalculation failed for product %s/%s: %s",
                               product_id, variation_id, e)

        return results

    async def cleanup(
        self, retention_days: int = DEFAULT_ANALYTICS_RETENTION_DAYS, dry_run: bool = False
    ) -> int:
        """Drop counter rows for products nobody wishlists any more.

        With ``dry_run`` only counts what would be deleted.
        """
        cutoff = self.clock() - timedelta(days=retention_days)
        stale = (
            WishlistAnalyticsRow.wishlist_count == 0,
            WishlistAnalyticsRow.updated_at < cutoff,
        )
        if dry_run:
            return (await self.session.execute(
                select(func.count(WishlistAnalyticsRow.id)).where(*stale)
            )).scalar() or 0

        result = await self.session.execute(delete(WishlistAnalyticsRow).where(*stale))
        await self.session.commit()
        return result.rowcount or 0

    # ── Reporting ────────────────────────────────────────────────────────────

    async def get_product_analytics(self, product_id: int, variation_id: int = 0) -> Optional[dict]:
        row = await self._get_row(product_id, variation_id)
        return _row_to_dict(row) if row else None

    async def get_popular_products(self, limit: int = 10, order_by: str = "wishlist_count") -> list[dict]:
        """Most-wishlisted products, enriched with live product name and URL.

        Without a product lookup the counter rows come back unenriched, with
        ``product_name`` and ``product_url`` set to None.
        """
        if order_by not in POPULAR_ORDER_FIELDS:
            order_by = "wishlist_count"

        rows = (await self.session.execute(
            select(WishlistAnalyticsRow)
            .where(WishlistAnalyticsRow.wishlist_count > 0)
            .order_by(getattr(WishlistAnalyticsRow, order_by).desc())
            .limit(limit)
        )).scalars().all()

        if self.products is None:
            return [dict(_row_to_dict(row), product_name=None, product_url=None) for row in rows]

        products = []
        for row in rows:
            try:
                product = await self.products.get_product(row.product_id)
            except Exception as e:
                logger.warning("Product lookup failed for %s: %s", row.product_id, e)
                continue
            if product is None:
                continue
            entry = _row_to_dict(row)
            entry["product_name"] = product.name
            entry["product_url"] = product.permalink
            products.append(entry)
        return products

    async def get_growth_data(self, days: int = 30) -> list[dict]:
        """Wishlists created per day over the last ``days`` days."""
        since = self.clock() - timedelta(days=days)
        day = func.date(WishlistRow.created_at)
        rows = (await self.session.execute(
            select(day.label("date"), func.count(WishlistRow.id).label("created"))
            .where(WishlistRow.created_at >= since, WishlistRow.status == "active")
            .group_by(day)
            .order_by(day)
        )).all()
        return [{"date": str(r.date), "wishlists_created": int(r.created)} for r in rows]

    async def _sum(self, column) -> int:
        return int((await self.session.execute(select(func.sum(column)))).scalar() or 0)

    async def get_overview(self) -> dict:
        total_wishlists = (await self.session.execute(
            select(func.count(WishlistRow.id)).where(WishlistRow.status == "active")
        )).scalar() or 0
        total_items = (await self.session.execute(
            select(func.count(WishlistItemRow.id)).where(WishlistItemRow.status == ItemStatus.ACTIVE.value)
        )).scalar() or 0
        unique_products = (await self.session.execute(
            select(func.count(func.distinct(WishlistItemRow.product_id)))
            .where(WishlistItemRow.status == ItemStatus.ACTIVE.value)
        )).scalar() or 0

        total_purchases = await self._sum(WishlistAnalyticsRow.purchase_count)
        total_adds = await self._sum(WishlistAnalyticsRow.wishlist_count)
        total_shares = await self._sum(WishlistAnalyticsRow.share_count)

        return {
            "total_wishlists": int(total_wishlists),
            "total_items": int(total_items),
            "unique_products": int(unique_products),
            "avg_items_per_wishlist": round(total_items / total_wishlists, 2) if total_wishlists else 0,
            "total_purchases": total_purchases,
            "overall_conversion_rate": _rate(total_purchases, total_adds),
            "total_shares": total_shares,
            "growth_data": await self.get_growth_data(30),
        }

    async def get_conversion_funnel(self) -> dict:
        added = await self._sum(WishlistAnalyticsRow.wishlist_count)
        clicked = await self._sum(WishlistAnalyticsRow.click_count)
        carted = await self._sum(WishlistAnalyticsRow.add_to_cart_count)
        purchased = await self._sum(WishlistAnalyticsRow.purchase_count)
        return {
            "added_to_wishlist": added,
            "clicked": clicked,
            "added_to_cart": carted,
            "purchased": purchased,
            "wishlist_to_cart_rate": _rate(carted, added),
            "cart_to_purchase_rate": _rate(purchased, carted),
            "overall_conversion_rate": _rate(purchased, added),
        }
