"""
Products service: CRUD over the cache-coherent repository.
"""

from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastapi import Body, Path
from prometheus_client import CollectorRegistry

from shared.base_service import BaseService
from shared.errors import AccessLayerException, CacheError, NotFoundError

from .models import (
    Product, ProductCreateRequest, ProductUpdateRequest, DeleteResponse
)
from .repository import ProductsRepository
from .persistence.postgres import PostgreSQLRecordStore
from .cache.redis_cache import RedisHashCache


class ProductsService(BaseService):
    """Products service implementation."""

    def __init__(
        self,
        store: Optional[PostgreSQLRecordStore] = None,
        cache: Optional[RedisHashCache] = None,
        registry: Optional[CollectorRegistry] = None
    ):
        super().__init__("products", 8013, registry=registry)

        # Initialize components
        self.store = store or PostgreSQLRecordStore(
            self.config.postgres_dsn,
            min_size=self.config.postgres_pool_min_size,
            max_size=self.config.postgres_pool_max_size,
            command_timeout=self.config.postgres_command_timeout
        )
        self.cache = cache or RedisHashCache(
            self.config.redis_url,
            socket_timeout=self.config.redis_socket_timeout
        )
        self.repository = ProductsRepository(self.store, self.cache, metrics=self.metrics)

        self._setup_products_routes()

    def _setup_products_routes(self):
        """Set up products-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "products",
                "message": "Products Service",
                "version": "1.0.0",
                "capabilities": ["persistence", "caching", "cache_sync"]
            }

        @self.app.get("/api/products", response_model=List[Product])
        @self.app.get("/api/getAllProducts", response_model=List[Product], include_in_schema=False)
        async def list_products():
            """List every product from the store."""
            return await self.repository.list_all()

        @self.app.get("/api/products/{product_id}", response_model=Product)
        async def get_product(product_id: int = Path(..., description="Product ID")):
            """Get a product by ID."""
            product = await self.repository.get_by_id(product_id)
            if product is None:
                raise NotFoundError("Product not found", {"product_id": product_id})
            return product

        @self.app.post("/api/products", response_model=Product, status_code=201)
        @self.app.post("/api/addProduct", response_model=Product, status_code=201, include_in_schema=False)
        async def create_product(request: ProductCreateRequest):
            """Create a new product."""
            product = await self.repository.create(request)
            self.logger.info("Product created", product_id=product.id, name=product.name)
            return product

        @self.app.put("/api/products/{product_id}", response_model=Product)
        @self.app.put("/api/updateProduct/{product_id}", response_model=Product, include_in_schema=False)
        async def update_product(
            product_id: int = Path(..., description="Product ID"),
            request: ProductUpdateRequest = Body(...)
        ):
            """Partially update a product."""
            product = await self.repository.update(product_id, request)
            if product is None:
                raise NotFoundError("Product not found", {"product_id": product_id})
            return product

        @self.app.delete("/api/products/{product_id}", response_model=DeleteResponse)
        @self.app.delete("/api/deleteProduct/{product_id}", response_model=DeleteResponse, include_in_schema=False)
        async def delete_product(product_id: int = Path(..., description="Product ID")):
            """Delete a product."""
            affected = await self.repository.delete(product_id)
            if not affected:
                raise NotFoundError("Product not found", {"product_id": product_id})
            return DeleteResponse(success=True, affected=affected, message="Product deleted successfully")

        @self.app.post("/api/sync")
        @self.app.get("/api/sync")
        async def sync_cache():
            """Reconcile the cache with the store."""
            report = await self.repository.reconcile()
            return {"success": True, **asdict(report)}

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check products service dependencies."""
        dependencies = {}

        # Check PostgreSQL
        try:
            dependencies["postgres"] = "ok" if await self.store.health_check() else "error"
        except Exception:
            dependencies["postgres"] = "error"

        # Check Redis
        try:
            dependencies["redis"] = "ok" if await self.cache.health_check() else "error"
        except Exception:
            dependencies["redis"] = "error"

        return dependencies

    async def start(self):
        """Start products service components."""
        await self.store.start()
        try:
            await self._start_cache()
        except Exception:
            await self.store.stop()
            raise

    async def _start_cache(self):
        # The store alone can serve every request; Redis reconnects lazily
        try:
            await self.cache.start()
        except CacheError as e:
            self.logger.warning("Cache unavailable at startup", code=e.code, error=e.message)

        if self.config.warm_cache_on_startup:
            try:
                report = await self.repository.load_cache()
            except AccessLayerException as e:
                self.logger.warning("Cache warm-up failed", code=e.code, error=e.message)
            else:
                self.logger.info("Products service started", cached=report.loaded, skipped=report.skipped)
                return

        self.logger.info("Products service started")

    async def stop(self):
        """Stop products service components."""
        await self.store.stop()
        await self.cache.stop()

        self.logger.info("Products service stopped")


def create_app(**kwargs: Any):
    """Create products service application."""
    service = ProductsService(**kwargs)
    return service.app


if __name__ == "__main__":
    service = ProductsService()
    service.run()
