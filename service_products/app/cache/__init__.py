"""
Cache package for Products Service.

Provides a thin Redis client storing each product as a hash under
``product:<id>``. Entries carry no TTL; staleness is repaired by
read-repair on misses and by explicit reconciliation.
"""
