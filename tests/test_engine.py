"""Tests for database URL handling."""
from src.db.engine import async_database_url, engine_options


class TestAsyncDatabaseURL:
    def test_postgres_urls_use_asyncpg(self):
        assert async_database_url("postgresql://u:p@db/wish") == "postgresql+asyncpg://u:p@db/wish"
        assert async_database_url("postgres://u:p@db/wish") == "postgresql+asyncpg://u:p@db/wish"

    def test_async_urls_untouched(self):
        assert async_database_url("sqlite+aiosqlite:///wishcart.db") == "sqlite+aiosqlite:///wishcart.db"
        assert async_database_url("postgresql+asyncpg://db/wish") == "postgresql+asyncpg://db/wish"


class TestEngineOptions:
    def test_sqlite_uses_default_pool(self):
        assert engine_options("sqlite+aiosqlite:///wishcart.db") == {}

    def test_postgres_pool_checks_connections(self):
        opts = engine_options("postgresql+asyncpg://db/wish")
        assert opts["pool_pre_ping"] is True
        assert opts["pool_size"] == 10
