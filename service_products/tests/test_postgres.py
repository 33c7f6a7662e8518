"""
Unit tests for PostgreSQLRecordStore.
"""

import pytest
import asyncpg
from unittest.mock import AsyncMock, MagicMock, patch

from shared.errors import (
    StoreConnectionError, StoreConstraintError, StoreQueryError
)
from service_products.app.persistence.postgres import PostgreSQLRecordStore, affected_rows


@pytest.fixture
def conn():
    """Mock asyncpg connection."""
    connection = MagicMock()
    connection.fetch = AsyncMock(return_value=[])
    connection.fetchrow = AsyncMock(return_value=None)
    connection.fetchval = AsyncMock(return_value=1)
    connection.execute = AsyncMock(return_value="CREATE TABLE")
    return connection


@pytest.fixture
def pool(conn):
    """Mock asyncpg pool handing out the mock connection."""
    mock_pool = MagicMock()
    mock_pool.acquire.return_value.__aenter__ = AsyncMock(return_value=conn)
    mock_pool.acquire.return_value.__aexit__ = AsyncMock(return_value=False)
    mock_pool.close = AsyncMock()
    return mock_pool


@pytest.fixture
def record_store(pool):
    """Started record store."""
    store = PostgreSQLRecordStore("postgres://localhost:5432/test")
    store.pool = pool
    return store


class TestAffectedRows:
    """Test cases for command status parsing."""

    @pytest.mark.parametrize("status,expected", [
        ("DELETE 1", 1),
        ("DELETE 0", 0),
        ("UPDATE 3", 3),
        ("INSERT 0 1", 1),
        ("CREATE TABLE", 0),
        ("", 0),
    ])
    def test_affected_rows(self, status, expected):
        assert affected_rows(status) == expected


class TestPostgreSQLRecordStore:
    """Test cases for PostgreSQLRecordStore."""

    @pytest.mark.asyncio
    async def test_start_creates_table(self, pool, conn):
        """Test that start creates the pool and bootstraps the table."""
        store = PostgreSQLRecordStore("postgres://localhost:5432/test", min_size=1, max_size=3)

        with patch(
            'service_products.app.persistence.postgres.asyncpg.create_pool',
            new=AsyncMock(return_value=pool)
        ) as mock_create_pool:
            await store.start()

        mock_create_pool.assert_awaited_once_with(
            "postgres://localhost:5432/test", min_size=1, max_size=3, command_timeout=30
        )
        statement = conn.execute.await_args.args[0]
        assert "CREATE TABLE IF NOT EXISTS PRODUCTS" in statement

    @pytest.mark.asyncio
    async def test_start_failure_raises_connection_error(self):
        """Test that an unreachable database surfaces as StoreConnectionError."""
        store = PostgreSQLRecordStore("postgres://localhost:1/test")

        with patch(
            'service_products.app.persistence.postgres.asyncpg.create_pool',
            new=AsyncMock(side_effect=OSError("Connection refused"))
        ):
            with pytest.raises(StoreConnectionError):
                await store.start()

    @pytest.mark.asyncio
    async def test_failed_table_bootstrap_closes_pool(self, pool, conn):
        """Test the pool is released when the table cannot be created."""
        conn.execute.side_effect = asyncpg.exceptions.InsufficientPrivilegeError("permission denied for schema public")
        store = PostgreSQLRecordStore("postgres://localhost:5432/test")

        with patch(
            'service_products.app.persistence.postgres.asyncpg.create_pool',
            new=AsyncMock(return_value=pool)
        ):
            with pytest.raises(StoreQueryError):
                await store.start()

        pool.close.assert_awaited_once()
        assert store.pool is None

    @pytest.mark.asyncio
    async def test_query_before_start_raises(self):
        """Test that using the store before start fails with a connection error."""
        store = PostgreSQLRecordStore("postgres://localhost:5432/test")

        with pytest.raises(StoreConnectionError):
            await store.fetch("SELECT 1")

    @pytest.mark.asyncio
    async def test_execute_returns_affected_rows(self, record_store, conn):
        """Test that execute parses the status tag."""
        conn.execute.return_value = "DELETE 1"

        assert await record_store.execute("DELETE FROM PRODUCTS WHERE ID = $1", 5) == 1
        conn.execute.assert_awaited_once_with("DELETE FROM PRODUCTS WHERE ID = $1", 5)

    @pytest.mark.asyncio
    async def test_fetch_passes_parameters(self, record_store, conn):
        """Test that queries are forwarded with their parameters."""
        conn.fetchrow.return_value = {"id": 1}

        row = await record_store.fetchrow("SELECT * FROM PRODUCTS WHERE ID = $1", 1)

        assert row == {"id": 1}
        conn.fetchrow.assert_awaited_once_with("SELECT * FROM PRODUCTS WHERE ID = $1", 1)

    @pytest.mark.asyncio
    async def test_constraint_violation_is_translated(self, record_store, conn):
        """Test integrity errors map to StoreConstraintError."""
        conn.fetchval.side_effect = asyncpg.exceptions.NotNullViolationError("null value in column")

        with pytest.raises(StoreConstraintError) as exc_info:
            await record_store.fetchval("INSERT INTO PRODUCTS (NAME) VALUES ($1)", None)

        assert exc_info.value.details["sqlstate"] == "23502"
        assert isinstance(exc_info.value.__cause__, asyncpg.exceptions.NotNullViolationError)

    @pytest.mark.asyncio
    async def test_syntax_error_is_translated(self, record_store, conn):
        """Test query errors map to StoreQueryError."""
        conn.fetch.side_effect = asyncpg.exceptions.PostgresSyntaxError("syntax error at or near")

        with pytest.raises(StoreQueryError):
            await record_store.fetch("SELEC 1")

    @pytest.mark.asyncio
    async def test_connection_loss_is_translated(self, record_store, conn):
        """Test dropped connections map to StoreConnectionError."""
        conn.fetch.side_effect = asyncpg.exceptions.ConnectionDoesNotExistError("connection was closed")

        with pytest.raises(StoreConnectionError):
            await record_store.fetch("SELECT 1")

    @pytest.mark.asyncio
    async def test_health_check(self, record_store, conn):
        """Test health check reports query failures as unhealthy."""
        assert await record_store.health_check() is True

        conn.fetchval.side_effect = OSError("Connection reset")
        assert await record_store.health_check() is False

    @pytest.mark.asyncio
    async def test_stop_closes_pool(self, record_store, pool):
        """Test stop closes and releases the pool."""
        await record_store.stop()

        pool.close.assert_awaited_once()
        assert record_store.pool is None
