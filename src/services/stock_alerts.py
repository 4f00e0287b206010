"""Price-drop and back-in-stock detection for wishlist items.

Each scan compares live product state (via a ProductLookup) with the state
last observed on the wishlist item and queues notifications through the
NotificationQueue:

- Price drop: fires when the live price is below the item's recorded
  ``original_price``, then records the new price so the same drop is not
  reported twice.
- Back in stock: fires on the transition to "in stock" (the item's
  ``last_stock_status`` was unknown or out of stock), suppressed when the same
  recipient already got a back-in-stock email for the product inside the
  de-dup window.

Lookup misses are skipped. One item's failure never aborts the scan.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.db.tables import WishlistItemRow, WishlistRow
from src.models.wishlist import ItemStatus, NotificationType, Product
from src.services.catalog import ProductLookup
from src.services.notifications import NotificationQueue, NotificationValidationError

logger = logging.getLogger(__name__)


@dataclass
class WatchedItem:
    """Plain snapshot of an active wishlist item and its owner."""
    item_id: int
    wishlist_id: int
    product_id: int
    variation_id: int
    user_id: Optional[int]
    user_email: Optional[str]
    original_price: Optional[float]
    last_stock_status: Optional[bool]


@dataclass
class DetectionResult:
    checked: int = 0
    notifications_queued: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


class StockAlerts:
    def __init__(
        self,
        session: AsyncSession,
        products: ProductLookup,
        queue: NotificationQueue,
        dedup_days: int | None = None,
    ):
        self.session = session
        self.products = products
        self.queue = queue
        self.dedup_days = dedup_days or settings.BACK_IN_STOCK_DEDUP_DAYS

    async def _watched_items(self, priced_only: bool = False) -> list[WatchedItem]:
        stmt = (
            select(
                WishlistItemRow.id,
                WishlistItemRow.wishlist_id,
                WishlistItemRow.product_id,
                WishlistItemRow.variation_id,
                WishlistRow.user_id,
                WishlistRow.user_email,
                WishlistItemRow.original_price,
                WishlistItemRow.last_stock_status,
            )
            .join(WishlistRow, WishlistItemRow.wishlist_id == WishlistRow.id)
            .where(
                WishlistItemRow.status == ItemStatus.ACTIVE.value,
                WishlistRow.status == "active",
            )
            .order_by(WishlistItemRow.id)
        )
        if priced_only:
            stmt = stmt.where(WishlistItemRow.original_price.is_not(None))
        rows = (await self.session.execute(stmt)).all()
        return [WatchedItem(*row) for row in rows]

    async def _lookup(self, cache: dict[int, Optional[Product]], product_id: int) -> Optional[Product]:
        if product_id not in cache:
            cache[product_id] = await self.products.get_product(product_id)
        return cache[product_id]

    async def _set_item(self, item_id: int, **values) -> None:
        await self.session.execute(
            update(WishlistItemRow).where(WishlistItemRow.id == item_id).values(**values)
        )
        await self.session.commit()

    async def check_price_drops(self) -> DetectionResult:
        results = DetectionResult()
        cache: dict[int, Optional[Product]] = {}

        for item in await self._watched_items(priced_only=True):
            results.checked += 1
            try:
                product = await self._lookup(cache, item.product_id)
                if product is None or product.price is None:
                    continue

                current_price = float(product.price)
                original_price = float(item.original_price)
                if current_price >= original_price:
                    continue
                if not item.user_email:
                    results.skipped += 1
                    continue

                await self.queue.queue_notification(
                    NotificationType.PRICE_DROP,
                    item.user_email,
                    {
                        "user_id": item.user_id,
                        "wishlist_id": item.wishlist_id,
                        "product_id": item.product_id,
                        "product_name": product.name,
                        "old_price": original_price,
                        "new_price": current_price,
                        "product_url": product.permalink,
                        "trigger_data": {
                            "item_id": item.item_id,
                            "old_price": original_price,
                            "new_price": current_price,
                        },
                    },
                )
                results.notifications_queued += 1
                await self._set_item(item.item_id, original_price=current_price)
            except NotificationValidationError as e:
                results.skipped += 1
                logger.debug("Price drop for item %s not queued: %s", item.item_id, e.message)
            except Exception as e:
                await self.session.rollback()
                results.errors.append(f"Item {item.item_id}: {e}")
                logger.warning("Price drop check failed for item %s: %s", item.item_id, e)

        return results

    async def check_back_in_stock(self) -> DetectionResult:
        results = DetectionResult()
        cache: dict[int, Optional[Product]] = {}

        for item in await self._watched_items():
            results.checked += 1
            try:
                product = await self._lookup(cache, item.product_id)
                if product is None:
                    continue

                if not product.in_stock:
                    if item.last_stock_status is not False:
                        await self._set_item(item.item_id, last_stock_status=False)
                    continue

                if item.last_stock_status is True:
                    continue

                if not item.user_email:
                    results.skipped += 1
                elif await self.queue.has_recent(
                    item.product_id,
                    NotificationType.BACK_IN_STOCK,
                    self.dedup_days,
                    user_id=item.user_id,
                    email_to=item.user_email,
                ):
                    results.skipped += 1
                else:
                    await self.queue.queue_notification(
                        NotificationType.BACK_IN_STOCK,
                        item.user_email,
                        {
                            "user_id": item.user_id,
                            "wishlist_id": item.wishlist_id,
                            "product_id": item.product_id,
                            "product_name": product.name,
                            "product_url": product.permalink,
                            "trigger_data": {"item_id": item.item_id},
                        },
                    )
                    results.notifications_queued += 1

                await self._set_item(item.item_id, last_stock_status=True)
            except NotificationValidationError as e:
                results.skipped += 1
                logger.debug("Back-in-stock for item %s not queued: %s", item.item_id, e.message)
            except Exception as e:
                await self.session.rollback()
                results.errors.append(f"Item {item.item_id}: {e}")
                logger.warning("Back-in-stock check failed for item %s: %s", item.item_id, e)

        return results
