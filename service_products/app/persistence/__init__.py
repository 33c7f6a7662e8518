"""
Persistence package for Products Service.

Wraps an asyncpg pool over the PRODUCTS table, the system of record.
"""
