"""Tests for price-drop and back-in-stock detection."""
import httpx
import pytest
from typing import Optional

from sqlalchemy import select

from conftest import StaticProducts
from src.db.tables import NotificationRow, WishlistItemRow, WishlistRow
from src.models.wishlist import NotificationType, Product
from src.services.catalog import ProductLookup, StoreApiProductLookup
from src.services.notifications import NotificationQueue
from src.services.stock_alerts import DetectionResult, StockAlerts


class FlakyProducts(StaticProducts):
    """Raises for one product id, serves the rest."""

    def __init__(self, broken_id: int, *products: Product):
        super().__init__(*products)
        self.broken_id = broken_id

    async def get_product(self, product_id: int) -> Optional[Product]:
        if product_id == self.broken_id:
            raise RuntimeError("catalogue unavailable")
        return await super().get_product(product_id)


async def _watch(session, product_id, price=None, user_id=1, email="alice@example.com",
                 wishlist_status="active", item_status="active", last_stock_status=None) -> int:
    wishlist = WishlistRow(user_id=user_id, user_email=email, status=wishlist_status)
    session.add(wishlist)
    await session.flush()
    item = WishlistItemRow(
        wishlist_id=wishlist.id,
        product_id=product_id,
        original_price=price,
        status=item_status,
        last_stock_status=last_stock_status,
    )
    session.add(item)
    await session.commit()
    return item.id


async def _notifications(session, ntype: NotificationType | None = None) -> list[NotificationRow]:
    stmt = select(NotificationRow).order_by(NotificationRow.id)
    if ntype:
        stmt = stmt.where(NotificationRow.notification_type == ntype.value)
    return list((await session.execute(stmt)).scalars().all())


async def _item(session, item_id) -> WishlistItemRow:
    return (await session.execute(
        select(WishlistItemRow).where(WishlistItemRow.id == item_id).execution_options(populate_existing=True)
    )).scalar_one()


def _alerts(session, products: ProductLookup, clock) -> StockAlerts:
    return StockAlerts(session, products, NotificationQueue(session, clock=clock), dedup_days=7)


class TestPriceDrops:
    @pytest.mark.asyncio
    async def test_drop_queues_once(self, session, clock):
        item_id = await _watch(session, 42, price=20.0)
        products = StaticProducts(Product(id=42, name="Widget", price=15.0, permalink="https://shop.example.com/widget"))
        alerts = _alerts(session, products, clock)

        result = await alerts.check_price_drops()
        assert isinstance(result, DetectionResult)
        assert result.checked == 1
        assert result.notifications_queued == 1

        [note] = await _notifications(session)
        assert note.notification_type == "price_drop"
        assert note.email_to == "alice@example.com"
        assert note.email_subject == "Price Drop Alert: Widget"
        assert "20.00" in note.email_content
        assert "15.00" in note.email_content
        assert note.trigger_data == {"item_id": item_id, "old_price": 20.0, "new_price": 15.0}
        assert (await _item(session, item_id)).original_price == 15.0

        # Same price on the next scan: nothing new
        result = await alerts.check_price_drops()
        assert result.notifications_queued == 0
        assert len(await _notifications(session)) == 1

    @pytest.mark.asyncio
    async def test_further_drop_queues_again(self, session, clock):
        await _watch(session, 42, price=20.0)
        products = StaticProducts(Product(id=42, name="Widget", price=15.0))
        alerts = _alerts(session, products, clock)
        await alerts.check_price_drops()

        products.products[42] = Product(id=42, name="Widget", price=12.0)
        result = await alerts.check_price_drops()
        assert result.notifications_queued == 1
        assert len(await _notifications(session, NotificationType.PRICE_DROP)) == 2

    @pytest.mark.asyncio
    async def test_price_rise_or_equal_ignored(self, session, clock):
        await _watch(session, 1, price=10.0)
        await _watch(session, 2, price=10.0)
        products = StaticProducts(Product(id=1, name="A", price=10.0), Product(id=2, name="B", price=12.5))
        result = await _alerts(session, products, clock).check_price_drops()
        assert result.checked == 2
        assert result.notifications_queued == 0

    @pytest.mark.asyncio
    async def test_unpriced_and_inactive_items_not_checked(self, session, clock):
        await _watch(session, 1, price=None)
        await _watch(session, 2, price=10.0, item_status="deleted")
        await _watch(session, 3, price=10.0, wishlist_status="deleted")
        products = StaticProducts(*(Product(id=i, name="X", price=1.0) for i in (1, 2, 3)))
        result = await _alerts(session, products, clock).check_price_drops()
        assert result.checked == 0

    @pytest.mark.asyncio
    async def test_lookup_miss_skipped(self, session, clock):
        item_id = await _watch(session, 99, price=10.0)
        result = await _alerts(session, StaticProducts(), clock).check_price_drops()
        assert result.notifications_queued == 0
        assert (await _item(session, item_id)).original_price == 10.0

    @pytest.mark.asyncio
    async def test_blank_store_price_is_not_a_drop(self, session, clock):
        item_id = await _watch(session, 7, price=20.0)
        client = httpx.AsyncClient(transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"id": 7, "name": "Widget", "price": ""})
        ))
        store = StoreApiProductLookup(base_url="https://shop.example.com/api/", client=client)

        result = await _alerts(session, store, clock).check_price_drops()
        assert result.checked == 1
        assert result.notifications_queued == 0
        assert result.errors == []
        assert await _notifications(session) == []
        assert (await _item(session, item_id)).original_price == 20.0

    @pytest.mark.asyncio
    async def test_guest_without_email_skipped(self, session, clock):
        await _watch(session, 42, price=20.0, user_id=None, email=None)
        products = StaticProducts(Product(id=42, name="Widget", price=15.0))
        result = await _alerts(session, products, clock).check_price_drops()
        assert result.skipped == 1
        assert result.notifications_queued == 0

    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_scan(self, session, clock):
        await _watch(session, 1, price=10.0)
        await _watch(session, 2, price=10.0)
        products = FlakyProducts(1, Product(id=2, name="B", price=5.0))
        result = await _alerts(session, products, clock).check_price_drops()
        assert result.checked == 2
        assert result.notifications_queued == 1
        assert len(result.errors) == 1
        assert "catalogue unavailable" in result.errors[0]

    @pytest.mark.asyncio
    async def test_product_looked_up_once_per_scan(self, session, clock):
        await _watch(session, 42, price=20.0, user_id=1, email="a@example.com")
        await _watch(session, 42, price=20.0, user_id=2, email="b@example.com")
        products = StaticProducts(Product(id=42, name="Widget", price=15.0))
        result = await _alerts(session, products, clock).check_price_drops()
        assert result.notifications_queued == 2
        assert products.calls == [42]


class TestBackInStock:
    @pytest.mark.asyncio
    async def test_repeat_scans_do_not_duplicate(self, session, clock):
        item_id = await _watch(session, 42)
        products = StaticProducts(Product(id=42, name="Lamp", price=40.0, in_stock=True))
        alerts = _alerts(session, products, clock)

        first = await alerts.check_back_in_stock()
        second = await alerts.check_back_in_stock()
        assert first.notifications_queued == 1
        assert second.notifications_queued == 0

        [note] = await _notifications(session)
        assert note.email_subject == "Back in Stock: Lamp"
        assert (await _item(session, item_id)).last_stock_status is True

    @pytest.mark.asyncio
    async def test_out_of_stock_recorded(self, session, clock):
        item_id = await _watch(session, 42)
        products = StaticProducts(Product(id=42, name="Lamp", price=40.0, in_stock=False))
        result = await _alerts(session, products, clock).check_back_in_stock()
        assert result.notifications_queued == 0
        assert (await _item(session, item_id)).last_stock_status is False

    @pytest.mark.asyncio
    async def test_restock_inside_window_suppressed(self, session, clock):
        await _watch(session, 42)
        products = StaticProducts(Product(id=42, name="Lamp", price=40.0, in_stock=True))
        alerts = _alerts(session, products, clock)
        await alerts.check_back_in_stock()

        products.products[42] = Product(id=42, name="Lamp", price=40.0, in_stock=False)
        clock.advance(days=2)
        await alerts.check_back_in_stock()

        products.products[42] = Product(id=42, name="Lamp", price=40.0, in_stock=True)
        clock.advance(days=1)
        result = await alerts.check_back_in_stock()
        assert result.notifications_queued == 0
        assert result.skipped == 1

        # Another flip after the window closes notifies again
        products.products[42] = Product(id=42, name="Lamp", price=40.0, in_stock=False)
        await alerts.check_back_in_stock()
        products.products[42] = Product(id=42, name="Lamp", price=40.0, in_stock=True)
        clock.advance(days=8)
        result = await alerts.check_back_in_stock()
        assert result.notifications_queued == 1
        assert len(await _notifications(session, NotificationType.BACK_IN_STOCK)) == 2

    @pytest.mark.asyncio
    async def test_window_alone_suppresses_second_wishlist(self, session, clock):
        # Same user watches the product from two wishlists
        await _watch(session, 42, user_id=7)
        await _watch(session, 42, user_id=7)
        products = StaticProducts(Product(id=42, name="Lamp", price=40.0, in_stock=True))
        result = await _alerts(session, products, clock).check_back_in_stock()
        assert result.checked == 2
        assert result.notifications_queued == 1
        assert result.skipped == 1

    @pytest.mark.asyncio
    async def test_guest_dedup_by_email(self, session, clock):
        await _watch(session, 42, user_id=None, email="guest@example.com")
        await _watch(session, 42, user_id=None, email="guest@example.com")
        products = StaticProducts(Product(id=42, name="Lamp", price=40.0, in_stock=True))
        result = await _alerts(session, products, clock).check_back_in_stock()
        assert result.notifications_queued == 1

    @pytest.mark.asyncio
    async def test_already_in_stock_items_ignored(self, session, clock):
        await _watch(session, 42, last_stock_status=True)
        products = StaticProducts(Product(id=42, name="Lamp", price=40.0, in_stock=True))
        result = await _alerts(session, products, clock).check_back_in_stock()
        assert result.notifications_queued == 0
        assert result.skipped == 0
