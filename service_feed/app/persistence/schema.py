"""
Entity registry for the feed store.

Each entity maps logical (wire) field names to SQL expressions over its
FROM clause. Filters, sorts and projections only ever use logical names.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Tuple

from shared.errors import ConfigurationError


@dataclass(frozen=True)
class EntitySchema:
    """Relational description of one entity kind."""
    name: str
    table: str
    from_clause: str
    fields: Dict[str, str]
    columns: Dict[str, str]
    default_projection: Tuple[str, ...]
    searchable_fields: Tuple[str, ...] = ()
    identity: str = "id"
    # Unique fields usable as a cursor, with the parser applied to raw cursor input
    cursor_parsers: Dict[str, Callable[[str], Any]] = field(default_factory=dict)

    def expression(self, name: str) -> str:
        try:
            return self.fields[name]
        except KeyError:
            raise ConfigurationError(
                f"Unknown field '{name}' for entity '{self.name}'",
                details={"entity": self.name, "field": name}
            )

    def column(self, name: str) -> str:
        try:
            return self.columns[name]
        except KeyError:
            raise ConfigurationError(
                f"Field '{name}' is not writable on entity '{self.name}'",
                details={"entity": self.name, "field": name}
            )


_AUTHOR_JSON = "json_build_object('id', u.id, 'name', u.name, 'email', u.email)"

USER = EntitySchema(
    name="user",
    table="users",
    from_clause="users u",
    fields={
        "id": "u.id",
        "name": "u.name",
        "email": "u.email",
        "createdAt": "u.created_at",
        "updatedAt": "u.updated_at",
    },
    columns={
        "name": "name",
        "email": "email",
        "updatedAt": "updated_at",
    },
    default_projection=("id", "name", "email", "createdAt", "updatedAt"),
    searchable_fields=("name", "email"),
    cursor_parsers={"id": int},
)

POST = EntitySchema(
    name="post",
    table="posts",
    from_clause="posts p JOIN users u ON u.id = p.user_id",
    fields={
        "id": "p.id",
        "captions": "p.captions",
        "userId": "p.user_id",
        "createdAt": "p.created_at",
        "updatedAt": "p.updated_at",
        "user": _AUTHOR_JSON,
        "saveCount": "(SELECT count(*) FROM saved_posts sp WHERE sp.post_id = p.id)",
    },
    columns={
        "captions": "captions",
        "userId": "user_id",
        "updatedAt": "updated_at",
    },
    default_projection=("id", "captions", "userId", "createdAt", "updatedAt", "user", "saveCount"),
    searchable_fields=("captions",),
    cursor_parsers={"id": int},
)

SAVED_POST = EntitySchema(
    name="savedPost",
    table="saved_posts",
    from_clause=(
        "saved_posts s "
        "JOIN posts p ON p.id = s.post_id "
        "JOIN users u ON u.id = p.user_id"
    ),
    fields={
        "id": "s.id",
        "userId": "s.user_id",
        "postId": "s.post_id",
        "createdAt": "s.created_at",
        "postOwnerId": "p.user_id",
        "post": (
            "json_build_object('id', p.id, 'captions', p.captions, 'userId', p.user_id, "
            f"'createdAt', p.created_at, 'updatedAt', p.updated_at, 'user', {_AUTHOR_JSON})"
        ),
    },
    columns={
        "userId": "user_id",
        "postId": "post_id",
    },
    default_projection=("id", "userId", "postId", "createdAt", "postOwnerId", "post"),
    cursor_parsers={"id": int},
)

ENTITIES: Dict[str, EntitySchema] = {
    schema.name: schema for schema in (USER, POST, SAVED_POST)
}


def get_schema(entity: str) -> EntitySchema:
    """Look up an entity, failing fast on unknown names."""
    schema = ENTITIES.get(entity)
    if schema is None:
        raise ConfigurationError(
            f"Entity '{entity}' does not exist in the store schema",
            details={"entity": entity, "known": sorted(ENTITIES)}
        )
    return schema
