"""
Pagination data models.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


@dataclass(frozen=True)
class OffsetWindow:
    """Page-number window: skip ``(page - 1) * limit`` rows."""
    page: int
    limit: int


@dataclass(frozen=True)
class CursorWindow:
    """Resume strictly after the row whose ``cursor_field`` equals ``cursor``."""
    cursor: Any
    cursor_field: str
    limit: int


Window = Union[OffsetWindow, CursorWindow]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OffsetPageInfo(_CamelModel):
    """Offset pagination metadata."""
    type: Literal["offset"] = "offset"
    page: int
    limit: int
    total: Optional[int] = None
    total_pages: Optional[int] = None
    has_next_page: bool
    has_previous_page: bool


class CursorPageInfo(_CamelModel):
    """Cursor pagination metadata."""
    type: Literal["cursor"] = "cursor"
    limit: int
    cursor: Any
    next_cursor: Optional[Any] = None
    has_more: bool
    total: Optional[int] = None


class ListResult(_CamelModel):
    """Uniform list envelope returned by every list endpoint."""
    items: List[Dict[str, Any]]
    pagination: Union[OffsetPageInfo, CursorPageInfo]

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict using the camelCase wire names."""
        return self.model_dump(mode="json", by_alias=True)
