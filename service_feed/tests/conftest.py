"""
Shared fixtures for Feed service tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence
from unittest.mock import AsyncMock

import fakeredis.aioredis
import pytest

from shared.errors import AuthenticationError, ConflictError
from shared.metrics import MetricsCollector
from service_feed.app.cache.invalidation import InvalidationEngine
from service_feed.app.cache.read_through import ReadThroughCache
from service_feed.app.cache.redis_cache import RedisCache
from service_feed.app.feeds.posts import PostFeed
from service_feed.app.feeds.saved_posts import SavedPostFeed
from service_feed.app.pagination.engine import PaginationEngine
from service_feed.app.pagination.filters import And, Contains, Direction, Eq, Gt, Lt, Or
from service_feed.app.persistence.schema import get_schema

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


def matches(node, row: Dict[str, Any]) -> bool:
    """Evaluate a filter tree against one materialized row."""
    if node is None:
        return True
    if isinstance(node, Eq):
        return row.get(node.field) == node.value
    if isinstance(node, Gt):
        return row[node.field] > node.value
    if isinstance(node, Lt):
        return row[node.field] < node.value
    if isinstance(node, Contains):
        return node.term.lower() in str(row.get(node.field) or "").lower()
    if isinstance(node, And):
        return all(matches(clause, row) for clause in node.clauses)
    if isinstance(node, Or):
        return any(matches(clause, row) for clause in node.clauses)
    raise TypeError(node)


class InMemoryStore:
    """Store adapter double over plain dicts with the same entity views as PostgreSQL."""

    def __init__(self):
        self.tables: Dict[str, Dict[int, Dict[str, Any]]] = {"user": {}, "post": {}, "savedPost": {}}
        self._ids = {"user": 0, "post": 0, "savedPost": 0}
        self._clock = 0
        self.calls: List[str] = []

    def _now(self) -> datetime:
        self._clock += 1
        return EPOCH + timedelta(minutes=self._clock)

    def schema(self, entity: str):
        return get_schema(entity)

    async def start(self):
        pass

    async def stop(self):
        pass

    async def health_check(self) -> bool:
        return True

    def add_user(self, name: str, email: str) -> Dict[str, Any]:
        self._ids["user"] += 1
        now = self._now()
        user = {"id": self._ids["user"], "name": name, "email": email, "createdAt": now, "updatedAt": now}
        self.tables["user"][user["id"]] = user
        return user

    def _author(self, user_id: int) -> Dict[str, Any]:
        user = self.tables["user"][user_id]
        return {"id": user["id"], "name": user["name"], "email": user["email"]}

    def _view(self, entity: str, row: Dict[str, Any]) -> Dict[str, Any]:
        if entity == "post":
            saves = sum(1 for s in self.tables["savedPost"].values() if s["postId"] == row["id"])
            return {**row, "user": self._author(row["userId"]), "saveCount": saves}
        if entity == "savedPost":
            post = self.tables["post"][row["postId"]]
            return {
                **row,
                "postOwnerId": post["userId"],
                "post": {**post, "user": self._author(post["userId"])},
            }
        return dict(row)

    def _rows(self, entity: str, where) -> List[Dict[str, Any]]:
        self.schema(entity)
        views = (self._view(entity, row) for row in self.tables[entity].values())
        return [row for row in views if matches(where, row)]

    @staticmethod
    def _sorted(rows: List[Dict[str, Any]], order_by: Sequence) -> List[Dict[str, Any]]:
        for term in reversed(tuple(order_by)):
            rows = sorted(rows, key=lambda row: row[term.field], reverse=term.direction == Direction.DESC)
        return rows

    def _project(self, entity: str, row: Dict[str, Any], projection: Optional[Sequence[str]]):
        names = projection or self.schema(entity).default_projection
        return {name: row[name] for name in names}

    async def find_many(self, entity, where=None, projection=None, order_by=(), skip=0, take=None):
        self.calls.append(f"find_many:{entity}")
        rows = self._sorted(self._rows(entity, where), order_by)[skip:]
        if take is not None:
            rows = rows[:take]
        return [self._project(entity, row, projection) for row in rows]

    async def count(self, entity, where=None) -> int:
        self.calls.append(f"count:{entity}")
        return len(self._rows(entity, where))

    async def find_first(self, entity, where, projection=None, order_by=()):
        rows = await self.find_many(entity, where, projection, order_by, take=1)
        return rows[0] if rows else None

    async def find_unique(self, entity, entity_id, projection=None):
        return await self.find_first(entity, Eq("id", entity_id), projection)

    async def create(self, entity, data):
        if entity == "savedPost":
            for saved in self.tables["savedPost"].values():
                if (saved["userId"], saved["postId"]) == (data["userId"], data["postId"]):
                    raise ConflictError("A record with this value already exists")
        self._ids[entity] += 1
        now = self._now()
        row = {"id": self._ids[entity], "createdAt": now, **data}
        if entity != "savedPost":
            row["updatedAt"] = now
        self.tables[entity][row["id"]] = row
        return await self.find_unique(entity, row["id"])

    async def update(self, entity, entity_id, data):
        row = self.tables[entity].get(entity_id)
        if row is None:
            return None
        row.update(data)
        return await self.find_unique(entity, entity_id)

    async def delete(self, entity, entity_id):
        existing = await self.find_unique(entity, entity_id)
        if existing is None:
            return None
        del self.tables[entity][entity_id]
        if entity == "post":
            # Saved rows go with their post
            for saved_id in [k for k, s in self.tables["savedPost"].items() if s["postId"] == entity_id]:
                del self.tables["savedPost"][saved_id]
        return existing


class StubAuthClient:
    """Auth client double: tokens map straight to users."""

    def __init__(self, tokens: Optional[Dict[str, Dict[str, Any]]] = None):
        self.tokens = tokens or {}

    async def verify_token(self, token: str) -> Dict[str, Any]:
        if token not in self.tokens:
            raise AuthenticationError("Invalid token")
        return self.tokens[token]


@pytest.fixture
def store():
    """In-memory store seeded with two users."""
    store = InMemoryStore()
    store.add_user("Ada Lovelace", "ada@example.com")
    store.add_user("Grace Hopper", "grace@example.com")
    return store


@pytest.fixture
def redis_cache():
    """RedisCache backed by fakeredis."""
    cache = RedisCache("redis://localhost:6379/0")
    cache.redis = fakeredis.aioredis.FakeRedis(decode_responses=True)
    cache.start = AsyncMock()
    cache.stop = AsyncMock()
    return cache


@pytest.fixture
def metrics():
    return MetricsCollector("feed")


@pytest.fixture
def paginator(store):
    return PaginationEngine(store)


@pytest.fixture
def reads(redis_cache, metrics):
    return ReadThroughCache(redis_cache, metrics)


@pytest.fixture
def invalidation(redis_cache, metrics):
    return InvalidationEngine(redis_cache, metrics)


@pytest.fixture
def post_feed(store, paginator, reads, invalidation):
    return PostFeed(store, paginator, reads, invalidation)


@pytest.fixture
def saved_feed(store, paginator, reads, invalidation):
    return SavedPostFeed(store, paginator, reads, invalidation)


@pytest.fixture
def auth_client():
    return StubAuthClient({
        "ada-token": {"id": 1, "email": "ada@example.com"},
        "grace-token": {"id": 2, "email": "grace@example.com"},
    })
