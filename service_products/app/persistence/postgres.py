"""
PostgreSQL record store for Products Service.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, List, Optional

import asyncpg
from shared.logging import get_logger
from shared.errors import (
    StoreConnectionError, StoreConstraintError, StoreQueryError
)
from ..models import TABLE


class PostgreSQLRecordStore:
    """Thin asyncpg adapter executing parameterized queries."""

    def __init__(
        self,
        dsn: str,
        min_size: int = 2,
        max_size: int = 10,
        command_timeout: float = 30
    ):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.logger = get_logger("products.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the record store."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout
            )
        except (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            self.logger.error("Failed to start PostgreSQL record store", error=str(e))
            raise StoreConnectionError(str(e)) from e

        # Create the table if it doesn't exist
        try:
            await self._create_tables()
        except Exception:
            await self.pool.close()
            self.pool = None
            raise

        self.logger.info("PostgreSQL record store started")

    async def stop(self):
        """Stop the record store."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL record store stopped")

    async def _create_tables(self):
        """Create database tables."""
        await self.execute(f"""
            CREATE TABLE IF NOT EXISTS {TABLE} (
                ID SERIAL PRIMARY KEY,
                NAME VARCHAR(255) NOT NULL,
                PRICE NUMERIC(10, 2) NOT NULL,
                DESCRIPTION TEXT NOT NULL DEFAULT ''
            )
        """)

    @asynccontextmanager
    async def _connection(self):
        """Acquire a pooled connection, translating driver errors."""
        if self.pool is None:
            raise StoreConnectionError("Record store not started")

        try:
            async with self.pool.acquire() as conn:
                yield conn
        except asyncpg.exceptions.IntegrityConstraintViolationError as e:
            raise StoreConstraintError(str(e), {"sqlstate": e.sqlstate}) from e
        except asyncpg.exceptions.PostgresConnectionError as e:
            raise StoreConnectionError(str(e)) from e
        except asyncpg.PostgresError as e:
            raise StoreQueryError(str(e), {"sqlstate": e.sqlstate}) from e
        except (OSError, asyncio.TimeoutError, asyncpg.InterfaceError) as e:
            raise StoreConnectionError(str(e) or type(e).__name__) from e

    async def fetch(self, query: str, *args: Any) -> List[asyncpg.Record]:
        """Run a query and return all rows."""
        async with self._connection() as conn:
            return await conn.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> Optional[asyncpg.Record]:
        """Run a query and return the first row, if any."""
        async with self._connection() as conn:
            return await conn.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        """Run a query and return the first column of the first row."""
        async with self._connection() as conn:
            return await conn.fetchval(query, *args)

    async def execute(self, query: str, *args: Any) -> int:
        """Run a statement and return the number of affected rows."""
        async with self._connection() as conn:
            status = await conn.execute(query, *args)
        return affected_rows(status)

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            await self.fetchval("SELECT 1")
            return True
        except Exception:
            return False


def affected_rows(status: str) -> int:
    """Parse the row count out of a command status tag such as ``DELETE 1``."""
    parts = (status or "").split()
    if parts and parts[-1].isdigit():
        return int(parts[-1])
    return 0
