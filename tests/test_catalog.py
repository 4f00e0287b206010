"""Tests for product lookups."""
import httpx
import pytest

from config.settings import settings
from src.db.tables import ProductRow
from src.services.catalog import (
    DbProductLookup,
    StoreApiProductLookup,
    USER_AGENT,
    _parse_store_product,
    build_product_lookup,
)


def _store(handler) -> StoreApiProductLookup:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return StoreApiProductLookup(base_url="https://shop.example.com/api/", api_key="k-123", client=client)


class TestParseStoreProduct:
    def test_string_price_and_stock_status(self):
        p = _parse_store_product({"id": 42, "name": "Widget", "price": "15.50", "stock_status": "outofstock"})
        assert p.price == 15.5
        assert p.in_stock is False

    def test_explicit_in_stock_flag_wins(self):
        p = _parse_store_product({"id": 42, "name": "Widget", "price": 9, "in_stock": True, "stock_status": "outofstock"})
        assert p.in_stock is True

    @pytest.mark.parametrize("raw", ["", None, "call us", "nan", "-5"])
    def test_unusable_price_is_unknown(self, raw):
        p = _parse_store_product({"id": 1, "name": "Gift card", "price": raw})
        assert p.price is None
        assert p.in_stock is True

    def test_missing_price_is_unknown(self):
        assert _parse_store_product({"id": 1, "name": "Gift card"}).price is None

    def test_zero_price_kept(self):
        assert _parse_store_product({"id": 1, "name": "Sample", "price": "0"}).price == 0.0


class TestStoreApiProductLookup:
    @pytest.mark.asyncio
    async def test_fetches_product(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            seen["ua"] = request.headers.get("user-agent")
            return httpx.Response(200, json={
                "id": 42, "name": "Widget", "price": "15.00",
                "stock_status": "instock", "permalink": "https://shop.example.com/widget",
            })

        product = await _store(handler).get_product(42)
        assert product.name == "Widget"
        assert product.price == 15.0
        assert product.in_stock is True
        assert product.permalink == "https://shop.example.com/widget"
        assert seen["url"] == "https://shop.example.com/api/products/42"
        assert seen["auth"] == "Bearer k-123"
        assert seen["ua"] == USER_AGENT

    @pytest.mark.asyncio
    async def test_missing_product_is_none(self):
        product = await _store(lambda request: httpx.Response(404, json={"code": "not_found"})).get_product(7)
        assert product is None

    @pytest.mark.asyncio
    async def test_blank_store_price_is_unknown(self):
        product = await _store(
            lambda request: httpx.Response(200, json={"id": 7, "name": "Widget", "price": ""})
        ).get_product(7)
        assert product.name == "Widget"
        assert product.price is None

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        lookup = _store(lambda request: httpx.Response(503))
        with pytest.raises(httpx.HTTPStatusError):
            await lookup.get_product(7)


class TestDbProductLookup:
    @pytest.mark.asyncio
    async def test_reads_mirror_table(self, session):
        session.add(ProductRow(id=42, name="Widget", price=15.0, in_stock=False, permalink="/widget"))
        await session.commit()

        lookup = DbProductLookup(session)
        product = await lookup.get_product(42)
        assert product.name == "Widget"
        assert product.in_stock is False
        assert await lookup.get_product(43) is None


class TestBuildProductLookup:
    def test_db_when_no_store_api(self, session, monkeypatch):
        monkeypatch.setattr(settings, "STORE_API_BASE", "")
        assert isinstance(build_product_lookup(session), DbProductLookup)

    def test_store_api_when_configured(self, session, monkeypatch):
        monkeypatch.setattr(settings, "STORE_API_BASE", "https://shop.example.com/api")
        lookup = build_product_lookup(session)
        assert isinstance(lookup, StoreApiProductLookup)
        assert lookup.base_url == "https://shop.example.com/api"
