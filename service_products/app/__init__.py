"""
Products Service package.

Serves CRUD operations for products with a write-through, read-through
Redis cache in front of the PostgreSQL system of record. It provides:

- app.main: API surface for product CRUD, cache sync and health.
- app.repository: Cache-coherent repository implementing the consistency policy.
- app.cache: Redis hash client holding one entry per product.
- app.persistence: PostgreSQL record store client.

Guidelines:
- The store is authoritative; cache entries are derived state.
- Cache writes never fail a store-backed request; reconciliation repairs drift.
"""
