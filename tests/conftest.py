"""Shared test fixtures — single test DB for all test modules."""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from config.settings import settings
from src.db.tables import Base
from src.db.engine import get_session
from src.models.wishlist import Product
from src.services.catalog import ProductLookup
from src.services.mailer import DeliverySink

# Use a shared in-memory DB with check_same_thread=False and StaticPool
# This ensures all connections see the same in-memory database.
from sqlalchemy.pool import StaticPool

TEST_DB_URL = "sqlite+aiosqlite:///file:test?mode=memory&cache=shared&uri=true"

test_engine = create_async_engine(
    TEST_DB_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSession = async_sessionmaker(test_engine, expire_on_commit=False, class_=AsyncSession)


async def override_get_session():
    async with TestSession() as session:
        yield session


# Import app and override BEFORE any test module imports app
from src.api.main import app  # noqa: E402

app.dependency_overrides[get_session] = override_get_session

# Scheduled jobs open their own sessions through the engine module
import src.db.engine as _engine_mod
_engine_mod.async_session = TestSession
_engine_mod.engine = test_engine


ADMIN_KEY = "test-admin-key"
T0 = datetime(2026, 3, 1, 12, 0, 0)


class FakeClock:
    """Controllable clock — naive UTC like the tables."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingSink(DeliverySink):
    """Delivery sink that records sends; can be told to fail, raise or hang."""

    def __init__(self, result: bool = True, error: Exception | None = None, delay: float = 0):
        self.result = result
        self.error = error
        self.delay = delay
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, to: str, subject: str, body: str) -> bool:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.sent.append((to, subject, body))
        return self.result


class StaticProducts(ProductLookup):
    """In-memory product lookup; tests mutate ``products`` between scans."""

    def __init__(self, *products: Product):
        self.products = {p.id: p for p in products}
        self.calls: list[int] = []

    async def get_product(self, product_id: int) -> Optional[Product]:
        self.calls.append(product_id)
        return self.products.get(product_id)


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def session():
    async with TestSession() as s:
        yield s


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def admin_headers(monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_API_KEY", ADMIN_KEY)
    return {"X-Admin-Key": ADMIN_KEY}


@pytest_asyncio.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
