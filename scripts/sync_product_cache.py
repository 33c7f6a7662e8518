#!/usr/bin/env python3
"""
Reconcile the product cache with the record store.

Runs the same pass as the service's ``/api/sync`` endpoint, but from a
developer workstation, cron or CI job. With ``--warm-only`` it only loads
store rows into Redis without removing orphaned entries.
"""

import argparse
import asyncio
import json
import os
import sys
from dataclasses import asdict
from pathlib import Path

from service_products.app.cache.redis_cache import RedisHashCache
from service_products.app.persistence.postgres import PostgreSQLRecordStore
from service_products.app.repository import ProductsRepository
from shared.logging import configure_logging


async def sync(*, redis_url: str, postgres_dsn: str, warm_only: bool) -> dict:
    """Run reconciliation (or warm-up) and return the summary."""
    store = PostgreSQLRecordStore(postgres_dsn, min_size=1, max_size=2)
    cache = RedisHashCache(redis_url)

    await store.start()
    try:
        await cache.start()
        try:
            repository = ProductsRepository(store, cache)
            if warm_only:
                report = await repository.load_cache()
            else:
                report = await repository.reconcile()
        finally:
            await cache.stop()
    finally:
        await store.stop()

    return {"mode": "warm" if warm_only else "sync", **asdict(report)}


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile the Redis product cache with PostgreSQL.")
    parser.add_argument("--redis-url", default=os.getenv("ACCESS_REDIS_URL", "redis://localhost:6379/0"), help="Redis connection URL")
    parser.add_argument("--postgres-dsn", default=os.getenv("ACCESS_POSTGRES_DSN", "postgres://localhost:5432/products"), help="PostgreSQL DSN")
    parser.add_argument("--warm-only", action="store_true", help="Only load store rows into the cache; keep orphaned entries")
    parser.add_argument("--log-level", default=os.getenv("ACCESS_LOG_LEVEL", "warning"), help="Log level")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write JSON summary")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = _parse_args(argv)
    configure_logging("products", args.log_level)
    try:
        summary = asyncio.run(
            sync(
                redis_url=args.redis_url,
                postgres_dsn=args.postgres_dsn,
                warm_only=args.warm_only,
            )
        )
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[product-sync] failed: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(summary, indent=2))

    if args.output:
        args.output.write_text(json.dumps(summary, indent=2))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
