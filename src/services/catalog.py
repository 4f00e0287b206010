"""Product lookups — live price and stock state for wishlist products.

Two backends:
- StoreApiProductLookup: the store's REST catalogue (``GET {base}/products/{id}``)
- DbProductLookup: the local ``products`` mirror table
"""
from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.db.tables import ProductRow
from src.models.wishlist import Product

logger = logging.getLogger(__name__)

USER_AGENT = "WishCart-Pipeline/1.0"


class ProductLookup(ABC):
    """Resolve a product id to its live state. Returns None when unknown."""

    @abstractmethod
    async def get_product(self, product_id: int) -> Optional[Product]:
        ...


def _parse_store_price(raw) -> Optional[float]:
    if raw in (None, ""):
        return None
    try:
        price = float(raw)
    except (TypeError, ValueError):
        return None
    return price if math.isfinite(price) and price >= 0 else None


def _parse_store_product(data: dict) -> Product:
    """Store payloads carry price as a string and stock as a status flag.

    A missing or unparseable price comes back as ``price=None`` so callers
    can tell "unknown" apart from "free".
    """
    price = _parse_store_price(data.get("price"))
    if price is None:
        logger.warning("Store product %s has no usable price: %r", data.get("id"), data.get("price"))

    if "in_stock" in data:
        in_stock = bool(data["in_stock"])
    else:
        in_stock = data.get("stock_status", "instock") == "instock"

    return Product(
        id=int(data["id"]),
        name=data.get("name") or "",
        price=price,
        in_stock=in_stock,
        permalink=data.get("permalink"),
    )


class StoreApiProductLookup(ProductLookup):
    """Fetch products from the store REST API."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url or settings.STORE_API_BASE).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.STORE_API_KEY
        self.timeout = timeout or settings.STORE_API_TIMEOUT_SECONDS
        self._client = client

    def _headers(self) -> dict[str, str]:
        headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _fetch(self, client: httpx.AsyncClient, product_id: int) -> Optional[Product]:
        resp = await client.get(f"{self.base_url}/products/{product_id}", headers=self._headers())
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return _parse_store_product(resp.json())

    async def get_product(self, product_id: int) -> Optional[Product]:
        if self._client is not None:
            return await self._fetch(self._client, product_id)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._fetch(client, product_id)


class DbProductLookup(ProductLookup):
    """Read products from the local mirror table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_product(self, product_id: int) -> Optional[Product]:
        row = (await self.session.execute(
            select(ProductRow).where(ProductRow.id == product_id)
        )).scalar_one_or_none()
        if row is None:
            return None
        return Product(
            id=row.id,
            name=row.name,
            price=row.price or 0.0,
            in_stock=bool(row.in_stock),
            permalink=row.permalink,
        )


def build_product_lookup(session: AsyncSession) -> ProductLookup:
    """Store API when configured, otherwise the local mirror."""
    if settings.STORE_API_BASE:
        return StoreApiProductLookup()
    return DbProductLookup(session)
