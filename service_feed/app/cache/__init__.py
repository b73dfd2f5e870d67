"""
Feed caching package.

Redis-backed read-through caching for listings, single entities and
aggregates, with pattern-based invalidation on every mutation. Cache
entries are never updated in place: mutations delete, the next read
repopulates.
"""
