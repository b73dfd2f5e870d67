"""
Unit tests for the PostgreSQL store adapter and its SQL compilation.
"""

from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

from shared.errors import ConfigurationError, ConflictError, ExternalServiceError
from service_feed.app.pagination.filters import And, Contains, Direction, Eq, Gt, Lt, Or, SortField
from service_feed.app.persistence.postgres import (
    PostgreSQLStore, compile_filter, compile_order, compile_projection,
)
from service_feed.app.persistence.schema import POST, SAVED_POST, get_schema


class TestCompileFilter:
    """Filter tree to SQL."""

    def test_no_filter(self):
        params = []
        assert compile_filter(None, POST, params) == "TRUE"
        assert params == []

    def test_comparisons_bind_parameters(self):
        params = []
        sql = compile_filter(And((Eq("userId", 1), Gt("id", 3), Lt("id", 9))), POST, params)

        assert sql == "(p.user_id = $1 AND p.id > $2 AND p.id < $3)"
        assert params == [1, 3, 9]

    def test_null_equality(self):
        params = []
        assert compile_filter(Eq("updatedAt", None), POST, params) == "p.updated_at IS NULL"
        assert params == []

    def test_contains_is_case_insensitive_and_escaped(self):
        params = []
        sql = compile_filter(Contains("captions", "50%_off\\"), POST, params)

        assert sql == "p.captions ILIKE $1 ESCAPE '\\'"
        assert params == ["%50\\%\\_off\\\\%"]

    def test_nested_groups(self):
        params = [None]
        node = And((Or((Contains("captions", "a"), Eq("id", 2))), Eq("userId", 7)))

        sql = compile_filter(node, POST, params)

        assert sql == "((p.captions ILIKE $2 ESCAPE '\\' OR p.id = $3) AND p.user_id = $4)"
        assert params[1:] == ["%a%", 2, 7]

    def test_empty_groups(self):
        assert compile_filter(And(()), POST, []) == "TRUE"
        assert compile_filter(Or(()), POST, []) == "FALSE"

    def test_joined_fields(self):
        assert compile_filter(Eq("postOwnerId", 4), SAVED_POST, []) == "p.user_id = $1"

    def test_unknown_field(self):
        with pytest.raises(ConfigurationError):
            compile_filter(Eq("likes", 1), POST, [])


class TestCompileClauses:
    """ORDER BY and projection."""

    def test_order(self):
        order = (SortField("createdAt", Direction.DESC), SortField("id", Direction.DESC))
        assert compile_order(order, POST) == " ORDER BY p.created_at DESC, p.id DESC"
        assert compile_order((), POST) == ""

    def test_projection(self):
        assert compile_projection(("id", "captions"), POST) == 'p.id AS "id", p.captions AS "captions"'

    def test_default_projection(self):
        assert compile_projection(None, get_schema("user")).startswith('u.id AS "id", u.name AS "name"')

    def test_unknown_entity(self):
        with pytest.raises(ConfigurationError):
            get_schema("comment")


def mock_pool(conn):
    pool = MagicMock()
    pool.acquire.return_value.__aenter__.return_value = conn
    return pool


class TestPostgreSQLStore:
    """Store operations over a mocked connection."""

    @pytest.fixture
    def conn(self):
        return AsyncMock()

    @pytest.fixture
    def store(self, conn):
        store = PostgreSQLStore("postgres://localhost/feed")
        store.pool = mock_pool(conn)
        return store

    @pytest.mark.asyncio
    async def test_find_many_builds_one_query(self, store, conn):
        conn.fetch.return_value = [{"id": 3}]

        rows = await store.find_many(
            "post", Eq("userId", 1), ("id",), (SortField("id", Direction.DESC),), skip=20, take=10
        )

        assert rows == [{"id": 3}]
        conn.fetch.assert_awaited_once_with(
            'SELECT p.id AS "id" FROM posts p JOIN users u ON u.id = p.user_id '
            "WHERE p.user_id = $1 ORDER BY p.id DESC LIMIT $2 OFFSET $3",
            1, 10, 20,
        )

    @pytest.mark.asyncio
    async def test_count(self, store, conn):
        conn.fetchval.return_value = 4

        assert await store.count("savedPost", Eq("postOwnerId", 2)) == 4
        sql = conn.fetchval.await_args.args[0]
        assert sql.startswith("SELECT count(*) FROM saved_posts s JOIN posts p")

    @pytest.mark.asyncio
    async def test_create_returns_full_row(self, store, conn):
        conn.fetchval.return_value = 11
        conn.fetch.return_value = [{"id": 11, "captions": "hi"}]

        row = await store.create("post", {"captions": "hi", "userId": 1})

        assert row == {"id": 11, "captions": "hi"}
        conn.fetchval.assert_awaited_once_with(
            "INSERT INTO posts (captions, user_id) VALUES ($1, $2) RETURNING id", "hi", 1
        )

    @pytest.mark.asyncio
    async def test_update_missing_row(self, store, conn):
        conn.fetchval.return_value = None

        assert await store.update("post", 5, {"captions": "x"}) is None
        conn.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_missing_row(self, store, conn):
        conn.fetch.return_value = []

        assert await store.delete("post", 5) is None
        conn.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_returns_prior_row(self, store, conn):
        conn.fetch.return_value = [{"id": 5, "userId": 1}]

        assert await store.delete("post", 5) == {"id": 5, "userId": 1}
        conn.execute.assert_awaited_once_with("DELETE FROM posts WHERE id = $1", 5)

    @pytest.mark.asyncio
    async def test_unique_violation_is_a_conflict(self, store, conn):
        conn.fetchval.side_effect = asyncpg.UniqueViolationError("duplicate key value")

        with pytest.raises(ConflictError):
            await store.create("savedPost", {"userId": 1, "postId": 2})

    @pytest.mark.asyncio
    async def test_driver_errors_are_external(self, store, conn):
        conn.fetch.side_effect = OSError("connection refused")

        with pytest.raises(ExternalServiceError):
            await store.find_many("post")

    @pytest.mark.asyncio
    async def test_unwritable_field(self, store):
        with pytest.raises(ConfigurationError):
            await store.create("post", {"saveCount": 3})

    @pytest.mark.asyncio
    async def test_not_started(self):
        store = PostgreSQLStore("postgres://localhost/feed")

        with pytest.raises(ExternalServiceError):
            await store.count("post")
        assert await store.health_check() is False
