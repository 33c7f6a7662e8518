"""
Cache-coherent product repository.

Reads and writes go to the PostgreSQL record store first; the Redis hash
for each product (``product:<id>``) is derived state maintained by:

- write-through: create/update/delete touch the store, then the cache;
- read-repair: a cache miss on ``get_by_id`` fills the entry from the store;
- reconciliation: ``reconcile`` rewrites every entry and drops orphans.

Store and cache mutations are not atomic. Concurrent updates to the same id
may leave either result in the cache until the next read-repair or
reconciliation. Cache failures on the request path are logged and counted,
never raised; the store remains the source of truth.
"""

from contextlib import nullcontext
from typing import Any, Dict, List, Mapping, Optional, Protocol, Set

from shared.errors import CacheError, PostInsertVerificationError, ValidationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from .models import (
    TABLE, COLUMN_ID, COLUMN_NAME, COLUMN_PRICE, COLUMN_DESCRIPTION,
    CACHE_KEY_PATTERN, cache_key, parse_cache_key, row_id, to_numeric,
    Product, ProductCreateRequest, ProductUpdateRequest,
    CacheLoadReport, SyncReport,
)


class RecordStore(Protocol):
    """Parameterized query interface of the system of record."""

    async def fetch(self, query: str, *args: Any) -> List[Mapping[str, Any]]: ...

    async def fetchrow(self, query: str, *args: Any) -> Optional[Mapping[str, Any]]: ...

    async def fetchval(self, query: str, *args: Any) -> Any: ...

    async def execute(self, query: str, *args: Any) -> int: ...


class HashCache(Protocol):
    """Hash-map cache interface keyed by entity."""

    async def hgetall(self, key: str) -> Dict[str, str]: ...

    async def hset(self, key: str, mapping: Mapping[str, str]) -> None: ...

    async def delete(self, *keys: str) -> int: ...

    async def keys(self, pattern: str) -> List[str]: ...


SELECT_COLUMNS = f"{COLUMN_ID}, {COLUMN_NAME}, {COLUMN_PRICE}, {COLUMN_DESCRIPTION}"
SELECT_ALL = f"SELECT {SELECT_COLUMNS} FROM {TABLE} ORDER BY {COLUMN_ID}"
SELECT_BY_ID = f"SELECT {SELECT_COLUMNS} FROM {TABLE} WHERE {COLUMN_ID} = $1"
INSERT = (
    f"INSERT INTO {TABLE} ({COLUMN_NAME}, {COLUMN_PRICE}, {COLUMN_DESCRIPTION}) "
    f"VALUES ($1, $2, $3) RETURNING {COLUMN_ID}"
)
DELETE_BY_ID = f"DELETE FROM {TABLE} WHERE {COLUMN_ID} = $1"


def build_update(product_id: int, request: ProductUpdateRequest):
    """Build an UPDATE statement covering only the supplied fields."""
    assignments = []
    args: List[Any] = []
    for position, (column, value) in enumerate(request.changed_fields(), start=1):
        assignments.append(f"{column} = ${position}")
        args.append(to_numeric(value) if column == COLUMN_PRICE else value)
    args.append(product_id)
    query = f"UPDATE {TABLE} SET {', '.join(assignments)} WHERE {COLUMN_ID} = ${len(args)}"
    return query, args


class ProductsRepository:
    """Serves product reads and writes with a read-through, write-through cache."""

    def __init__(self, store: RecordStore, cache: HashCache, metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.cache = cache
        self.metrics = metrics
        self.logger = get_logger("products.repository")

    # -------------------------- reads --------------------------
    async def list_all(self) -> List[Product]:
        """Return every product from the store; the cache holds no list index."""
        rows = await self._fetch_all()
        self.logger.debug("Listed products", count=len(rows))
        return [Product.from_row(row) for row in rows]

    async def get_by_id(self, product_id: int) -> Optional[Product]:
        """Return a product, serving from the cache and filling it on a miss."""
        key = cache_key(product_id)
        try:
            cached = await self.cache.hgetall(key)
        except CacheError as e:
            self._cache_failed("read", e, product_id=product_id)
            cached = {}

        if cached:
            try:
                product = Product.from_cache_mapping(cached)
            except (KeyError, ValueError) as e:
                self.logger.warning("Discarding malformed cache entry", key=key, error=str(e))
            else:
                self._count("product_cache_hits_total")
                self.logger.debug("Cache hit", product_id=product_id)
                return product

        self._count("product_cache_misses_total")
        self.logger.debug("Cache miss", product_id=product_id)

        product = await self._fetch_from_store(product_id)
        if product is not None:
            await self._write_cache(product, "read_repair")
        return product

    # -------------------------- writes --------------------------
    async def create(self, request: ProductCreateRequest) -> Product:
        """Insert a product and return it exactly as the store holds it."""
        with self._timed("insert"):
            product_id = await self.store.fetchval(
                INSERT, request.name, to_numeric(request.price), request.description
            )
        self.logger.info("Product inserted", product_id=product_id)

        product = await self._fetch_from_store(product_id) if product_id is not None else None
        if product is None:
            self.logger.error("Product not found after insert", product_id=product_id)
            raise PostInsertVerificationError(product_id)

        await self._write_cache(product, "create")
        return product

    async def update(self, product_id: int, request: ProductUpdateRequest) -> Optional[Product]:
        """Apply a partial update; return the refreshed product, or None if absent."""
        if not request.has_changes():
            raise ValidationError(
                "At least one field must be provided for update",
                {"product_id": product_id, "fields": ["name", "price", "description"]}
            )

        query, args = build_update(product_id, request)
        with self._timed("update"):
            affected = await self.store.execute(query, *args)
        self.logger.info(
            "Product updated",
            product_id=product_id,
            fields=[column for column, _ in request.changed_fields()],
            affected=affected
        )

        # Re-read the store, not the cache, so a stale entry is never returned
        product = await self._fetch_from_store(product_id)
        if product is None:
            await self._delete_cache(product_id, "update")
            return None

        await self._write_cache(product, "update")
        return product

    async def delete(self, product_id: int) -> int:
        """Delete a product and its cache entry; return the affected row count."""
        with self._timed("delete"):
            affected = await self.store.execute(DELETE_BY_ID, product_id)

        await self._delete_cache(product_id, "delete")

        if affected:
            self.logger.info("Product deleted", product_id=product_id)
        else:
            self.logger.info("Product not found for deletion", product_id=product_id)
        return affected

    # -------------------------- cache maintenance --------------------------
    async def load_cache(self) -> CacheLoadReport:
        """Warm the cache with every store row. Best-effort, never raises on cache failure."""
        self.logger.info("Loading products into cache")
        report = CacheLoadReport()

        for row in await self._fetch_all():
            if row_id(row) is None:
                self.logger.warning("Product without ID found", row=dict(row))
                report.skipped += 1
                continue
            product = Product.from_row(row)
            try:
                await self.cache.hset(cache_key(product.id), product.to_cache_mapping())
            except CacheError as e:
                self._cache_failed("warm", e, product_id=product.id)
                break
            report.loaded += 1

        self.logger.info("Cache loaded", loaded=report.loaded, skipped=report.skipped)
        return report

    async def reconcile(self) -> SyncReport:
        """Make cache entries match the store exactly, adding and removing entries."""
        self.logger.info("Synchronizing cache with store")
        report = SyncReport()

        products = await self.list_all()
        existing_ids: Set[int] = {product.id for product in products}

        for product in products:
            key = cache_key(product.id)
            try:
                await self.cache.hset(key, product.to_cache_mapping())
            except CacheError as e:
                # A key of another type cannot take hash fields; replace it
                self.logger.warning("Replacing unwritable cache entry", key=key, error=e.message)
                await self.cache.delete(key)
                await self.cache.hset(key, product.to_cache_mapping())
            report.synced += 1

        for key in await self.cache.keys(CACHE_KEY_PATTERN):
            product_id = parse_cache_key(key)
            if product_id in existing_ids:
                continue
            await self.cache.delete(key)
            report.removed += 1
            report.removed_keys.append(key)
            self.logger.warning("Removed orphaned cache entry", key=key)

        self._count("product_cache_sync_removed_total", report.removed)
        self.logger.info("Synchronization completed", synced=report.synced, removed=report.removed)
        return report

    # -------------------------- helpers --------------------------
    async def _fetch_all(self) -> List[Mapping[str, Any]]:
        with self._timed("select_all"):
            return await self.store.fetch(SELECT_ALL)

    async def _fetch_from_store(self, product_id: int) -> Optional[Product]:
        with self._timed("select_by_id"):
            row = await self.store.fetchrow(SELECT_BY_ID, product_id)
        return Product.from_row(row) if row is not None else None

    async def _write_cache(self, product: Product, operation: str) -> None:
        try:
            await self.cache.hset(cache_key(product.id), product.to_cache_mapping())
        except CacheError as e:
            self._cache_failed(operation, e, product_id=product.id)
            return
        self.logger.debug("Product cached", product_id=product.id, operation=operation)

    async def _delete_cache(self, product_id: int, operation: str) -> None:
        try:
            await self.cache.delete(cache_key(product_id))
        except CacheError as e:
            self._cache_failed(operation, e, product_id=product_id)
            return
        self.logger.debug("Product removed from cache", product_id=product_id, operation=operation)

    def _cache_failed(self, operation: str, error: CacheError, **context) -> None:
        self.logger.error("Cache operation failed", operation=operation, error=str(error), **context)
        self._count("product_cache_errors_total", operation=operation)

    def _count(self, metric_name: str, amount: float = 1, **labels) -> None:
        if self.metrics and amount:
            self.metrics.increment_counter(metric_name, amount, **labels)

    def _timed(self, operation: str):
        if self.metrics:
            return self.metrics.time_operation("product_store_query_duration_seconds", operation=operation)
        return nullcontext()
