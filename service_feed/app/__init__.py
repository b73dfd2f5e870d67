"""
Feed Service package for the social feed backend.

The feed service serves posts, saved-post bookmarks and per-user post
statistics. Every list endpoint is read through a Redis cache in front of
PostgreSQL, and every mutation clears the cache families it may have made
stale before the response is returned.

Structure:
- app.main: FastAPI app, routes, and service wiring.
- app.pagination: Filter expressions and the offset/cursor pagination engine.
- app.persistence: Entity registry and the asyncpg store adapter.
- app.cache: Redis client, key derivation, invalidation and read-through.
- app.feeds: Per-resource orchestration (posts, saved posts, users).
- app.adapters: HTTP clients for external services.
- app.domain: Cross-cutting request helpers (e.g., auth middleware).
"""
