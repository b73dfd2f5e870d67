"""
PostgreSQL store adapter for Feed Service.
"""

import json
from typing import Any, Dict, List, Optional, Sequence

import asyncpg

from shared.logging import get_logger
from shared.errors import (
    ConfigurationError,
    ConflictError,
    ExternalServiceError,
    ValidationError,
)
from ..pagination.filters import And, Contains, Eq, Filter, Gt, Lt, Or, SortField
from .schema import EntitySchema, get_schema


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def compile_filter(node: Optional[Filter], schema: EntitySchema, params: List[Any]) -> str:
    """Compile a filter tree to a SQL predicate, appending bind values to ``params``."""
    if node is None:
        return "TRUE"

    if isinstance(node, (Eq, Gt, Lt)):
        expr = schema.expression(node.field)
        if isinstance(node, Eq) and node.value is None:
            return f"{expr} IS NULL"
        params.append(node.value)
        operator = {Eq: "=", Gt: ">", Lt: "<"}[type(node)]
        return f"{expr} {operator} ${len(params)}"

    if isinstance(node, Contains):
        params.append(f"%{_escape_like(node.term)}%")
        return f"{schema.expression(node.field)} ILIKE ${len(params)} ESCAPE '\\'"

    if isinstance(node, And):
        if not node.clauses:
            return "TRUE"
        return "(" + " AND ".join(compile_filter(c, schema, params) for c in node.clauses) + ")"

    if isinstance(node, Or):
        if not node.clauses:
            return "FALSE"
        return "(" + " OR ".join(compile_filter(c, schema, params) for c in node.clauses) + ")"

    raise ConfigurationError(f"Unsupported filter node: {type(node).__name__}")


def compile_order(order_by: Sequence[SortField], schema: EntitySchema) -> str:
    if not order_by:
        return ""
    terms = ", ".join(
        f"{schema.expression(term.field)} {term.direction.value.upper()}" for term in order_by
    )
    return f" ORDER BY {terms}"


def compile_projection(projection: Optional[Sequence[str]], schema: EntitySchema) -> str:
    names = projection or schema.default_projection
    return ", ".join(f'{schema.expression(name)} AS "{name}"' for name in names)


class PostgreSQLStore:
    """Generic asyncpg-backed store keyed by entity name."""

    def __init__(self, dsn: str, command_timeout: float = 30.0):
        self.dsn = dsn
        self.command_timeout = command_timeout
        self.logger = get_logger("feed.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the store."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=2,
                max_size=10,
                command_timeout=self.command_timeout,
                init=self._init_connection
            )
            self.logger.info("PostgreSQL store started")

        except Exception as e:
            self.logger.error("Failed to start PostgreSQL store", error=str(e))
            raise ExternalServiceError("postgres", str(e))

    async def stop(self):
        """Stop the store."""
        if self.pool:
            await self.pool.close()
            self.logger.info("PostgreSQL store stopped")

    @staticmethod
    async def _init_connection(conn: asyncpg.Connection):
        for type_name in ("json", "jsonb"):
            await conn.set_type_codec(
                type_name,
                encoder=json.dumps,
                decoder=json.loads,
                schema="pg_catalog"
            )

    def schema(self, entity: str) -> EntitySchema:
        return get_schema(entity)

    async def _run(self, method: str, sql: str, *args):
        if self.pool is None:
            raise ExternalServiceError("postgres", "store not started")
        try:
            async with self.pool.acquire() as conn:
                return await getattr(conn, method)(sql, *args)
        except asyncpg.UniqueViolationError as e:
            raise ConflictError("A record with this value already exists", details={"constraint": e.constraint_name})
        except asyncpg.ForeignKeyViolationError as e:
            raise ValidationError("Foreign key constraint failed", details={"constraint": e.constraint_name})
        except (asyncpg.PostgresError, OSError) as e:
            self.logger.error("PostgreSQL query failed", error=str(e))
            raise ExternalServiceError("postgres", str(e))

    async def find_many(
        self,
        entity: str,
        where: Optional[Filter] = None,
        projection: Optional[Sequence[str]] = None,
        order_by: Sequence[SortField] = (),
        skip: int = 0,
        take: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch rows matching ``where`` in ``order_by`` order."""
        schema = self.schema(entity)
        params: List[Any] = []
        predicate = compile_filter(where, schema, params)
        sql = (
            f"SELECT {compile_projection(projection, schema)} "
            f"FROM {schema.from_clause} WHERE {predicate}"
            f"{compile_order(order_by, schema)}"
        )
        if take is not None:
            params.append(take)
            sql += f" LIMIT ${len(params)}"
        if skip:
            params.append(skip)
            sql += f" OFFSET ${len(params)}"

        rows = await self._run("fetch", sql, *params)
        return [dict(row) for row in rows]

    async def count(self, entity: str, where: Optional[Filter] = None) -> int:
        """Count rows matching ``where``."""
        schema = self.schema(entity)
        params: List[Any] = []
        predicate = compile_filter(where, schema, params)
        sql = f"SELECT count(*) FROM {schema.from_clause} WHERE {predicate}"
        return int(await self._run("fetchval", sql, *params))

    async def find_first(
        self,
        entity: str,
        where: Optional[Filter],
        projection: Optional[Sequence[str]] = None,
        order_by: Sequence[SortField] = (),
    ) -> Optional[Dict[str, Any]]:
        rows = await self.find_many(entity, where, projection, order_by, take=1)
        return rows[0] if rows else None

    async def find_unique(
        self,
        entity: str,
        entity_id: Any,
        projection: Optional[Sequence[str]] = None,
    ) -> Optional[Dict[str, Any]]:
        schema = self.schema(entity)
        return await self.find_first(entity, Eq(schema.identity, entity_id), projection)

    async def create(self, entity: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a row and return it in its default projection."""
        schema = self.schema(entity)
        columns = [schema.column(name) for name in data]
        placeholders = ", ".join(f"${index}" for index in range(1, len(columns) + 1))
        sql = (
            f"INSERT INTO {schema.table} ({', '.join(columns)}) "
            f"VALUES ({placeholders}) RETURNING id"
        )
        new_id = await self._run("fetchval", sql, *data.values())
        self.logger.info("Row created", entity=entity, id=new_id)
        return await self.find_unique(entity, new_id)

    async def update(self, entity: str, entity_id: Any, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Update a row; ``None`` when it does not exist."""
        schema = self.schema(entity)
        assignments = ", ".join(
            f"{schema.column(name)} = ${index}" for index, name in enumerate(data, start=1)
        )
        sql = f"UPDATE {schema.table} SET {assignments} WHERE id = ${len(data) + 1} RETURNING id"
        updated_id = await self._run("fetchval", sql, *data.values(), entity_id)
        if updated_id is None:
            return None
        self.logger.info("Row updated", entity=entity, id=updated_id)
        return await self.find_unique(entity, updated_id)

    async def delete(self, entity: str, entity_id: Any) -> Optional[Dict[str, Any]]:
        """Delete a row and return its last state; ``None`` when it does not exist."""
        schema = self.schema(entity)
        existing = await self.find_unique(entity, entity_id)
        if existing is None:
            return None
        await self._run("execute", f"DELETE FROM {schema.table} WHERE id = $1", entity_id)
        self.logger.info("Row deleted", entity=entity, id=entity_id)
        return existing

    async def health_check(self) -> bool:
        """Check PostgreSQL health."""
        try:
            return await self._run("fetchval", "SELECT 1") == 1
        except ExternalServiceError:
            return False
