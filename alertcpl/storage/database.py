"""
PostgreSQL access for the AlertCPL store.

One asyncpg pool per process, shared by the API handlers, the scheduled
reconciliation cycle and the CLI. Repositories take a ``Database`` and use
its one-shot query helpers; multi-statement work goes through
``transaction()``.

Sessions run with ``timezone=UTC`` so ``created_at`` comparisons in the
suppression-window query and the ``now()`` defaults agree with the engine's
UTC clock.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any
from urllib.parse import urlsplit

import asyncpg

from alertcpl.config.settings import get_settings

logger = logging.getLogger(__name__)

APPLICATION_NAME = "alertcpl"
SERVER_SETTINGS = {"application_name": APPLICATION_NAME, "timezone": "UTC"}


class Database:
    """
    Owner of the asyncpg pool.

    Usage:
        async with Database() as db:
            rows = await db.fetch("SELECT * FROM ad_accounts WHERE is_active")
    """

    def __init__(
        self,
        database_url: str | None = None,
        min_size: int | None = None,
        max_size: int | None = None,
    ):
        settings = get_settings()
        self.dsn = database_url or str(settings.database_url)
        self.min_size = min_size or settings.db_pool_min_size
        self.max_size = max_size or settings.db_pool_max_size
        self._pool: asyncpg.Pool | None = None

    @property
    def host(self) -> str | None:
        """Database host for log lines; the DSN itself carries the password."""
        return urlsplit(self.dsn).hostname

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._pool

    async def connect(self) -> None:
        """Open the pool. Idempotent."""
        if self._pool is not None:
            return
        try:
            self._pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                server_settings=SERVER_SETTINGS,
            )
        except (OSError, asyncpg.PostgresError) as e:
            logger.error("Cannot reach PostgreSQL at %s: %s", self.host, e)
            raise
        logger.info(
            "PostgreSQL pool open: host=%s size=%d..%d",
            self.host, self.min_size, self.max_size,
        )

    async def close(self) -> None:
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        await pool.close()
        logger.info("PostgreSQL pool closed: host=%s", self.host)

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection]:
        async with self.pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """A pooled connection with an open transaction, committed on clean exit."""
        async with self.pool.acquire() as conn, conn.transaction():
            yield conn

    async def execute(self, query: str, *args: Any) -> str:
        """Run one statement; returns the command tag, e.g. ``UPDATE 1``."""
        return await self.pool.execute(query, *args)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        return await self.pool.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        return await self.pool.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        return await self.pool.fetchval(query, *args)

    async def health_check(self) -> bool:
        """``SELECT 1`` round trip; False (and a warning) on any failure."""
        try:
            return await self.fetchval("SELECT 1") == 1
        except Exception as e:
            logger.warning("PostgreSQL health check failed: host=%s error=%s", self.host, e)
            return False


_database: Database | None = None
_database_lock = asyncio.Lock()


async def get_database() -> Database:
    """
    The process-wide ``Database``, connected on first use.

    The first scheduled cycle and the first API request can arrive together;
    the lock keeps them from opening two pools.
    """
    global _database

    async with _database_lock:
        if _database is None:
            database = Database()
            await database.connect()
            _database = database
    return _database


async def close_database() -> None:
    global _database

    async with _database_lock:
        if _database is not None:
            await _database.close()
            _database = None
