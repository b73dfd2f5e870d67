"""
Pagination engine.

Turns a list request into exactly one retrieval strategy against the
store adapter. The window type is decided once, when request parameters
are normalized, and dispatched once in ``paginate``.
"""

import asyncio
import math
from typing import Any, List, Optional, Sequence, Tuple

from shared.logging import get_logger
from shared.errors import ConfigurationError
from .filters import Direction, Eq, Filter, SortField, all_of, seek_after
from .models import CursorPageInfo, CursorWindow, ListResult, OffsetPageInfo, OffsetWindow, Window


def _positive_int(value: Any, default: int) -> int:
    """Parse a positive integer, falling back to ``default`` for anything else."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


class PaginationEngine:
    """Offset and cursor pagination over the store adapter."""

    def __init__(self, store, default_limit: int = 10):
        self.store = store
        self.default_limit = default_limit
        self.logger = get_logger("feed.pagination")

    def window_from_params(
        self,
        entity: str,
        page: Any = None,
        limit: Any = None,
        cursor: Any = None,
        cursor_field: Optional[str] = None,
    ) -> Window:
        """Normalize raw query parameters into an offset or cursor window.

        Cursor mode is selected iff a usable cursor is present. Unknown
        cursor fields fall back to the entity's identity field, and a cursor
        that cannot be parsed for its field is dropped (offset mode).
        """
        schema = self.store.schema(entity)
        parsed_limit = _positive_int(limit, self.default_limit)

        if cursor is not None and cursor != "":
            field = cursor_field if cursor_field in schema.cursor_parsers else schema.identity
            parser = schema.cursor_parsers.get(field, str)
            try:
                value = parser(cursor)
            except (TypeError, ValueError):
                self.logger.debug("Ignoring malformed cursor", entity=entity, field=field, cursor=str(cursor))
            else:
                return CursorWindow(cursor=value, cursor_field=field, limit=parsed_limit)

        return OffsetWindow(page=_positive_int(page, 1), limit=parsed_limit)

    async def paginate(
        self,
        entity: str,
        where: Optional[Filter],
        order_by: Sequence[SortField],
        window: Window,
        projection: Optional[Sequence[str]] = None,
        include_total: bool = True,
    ) -> ListResult:
        """Run one page of ``entity`` rows through the strategy ``window`` selects."""
        schema = self.store.schema(entity)
        order = self._stable_order(order_by, schema.identity)

        if isinstance(window, CursorWindow):
            return await self._paginate_cursor(entity, where, order, window, projection, include_total)
        if isinstance(window, OffsetWindow):
            return await self._paginate_offset(entity, where, order, window, projection, include_total)

        raise ConfigurationError(f"Unsupported pagination window: {type(window).__name__}")

    @staticmethod
    def _stable_order(order_by: Sequence[SortField], identity: str) -> Tuple[SortField, ...]:
        """Append the identity field as a tie-breaker so page boundaries are deterministic."""
        order = tuple(order_by)
        if any(term.field == identity for term in order):
            return order
        direction = order[-1].direction if order else Direction.DESC
        return order + (SortField(identity, direction),)

    async def _count(self, entity: str, where: Optional[Filter], include_total: bool) -> Optional[int]:
        if not include_total:
            return None
        return await self.store.count(entity, where)

    async def _paginate_offset(
        self,
        entity: str,
        where: Optional[Filter],
        order: Tuple[SortField, ...],
        window: OffsetWindow,
        projection: Optional[Sequence[str]],
        include_total: bool,
    ) -> ListResult:
        skip = (window.page - 1) * window.limit
        # Without a count, one look-ahead row tells whether another page exists
        take = window.limit if include_total else window.limit + 1

        rows, total = await asyncio.gather(
            self.store.find_many(entity, where, projection, order, skip=skip, take=take),
            self._count(entity, where, include_total),
        )

        if total is not None:
            total_pages = math.ceil(total / window.limit)
            has_next = window.page < total_pages
        else:
            total_pages = None
            has_next = len(rows) > window.limit
            rows = rows[:window.limit]

        return ListResult(
            items=rows,
            pagination=OffsetPageInfo(
                page=window.page,
                limit=window.limit,
                total=total,
                total_pages=total_pages,
                has_next_page=has_next,
                has_previous_page=window.page > 1,
            ),
        )

    async def _paginate_cursor(
        self,
        entity: str,
        where: Optional[Filter],
        order: Tuple[SortField, ...],
        window: CursorWindow,
        projection: Optional[Sequence[str]],
        include_total: bool,
    ) -> ListResult:
        anchor_fields = tuple(dict.fromkeys(term.field for term in order))
        anchor, total = await asyncio.gather(
            self.store.find_first(entity, Eq(window.cursor_field, window.cursor), anchor_fields),
            self._count(entity, where, include_total),
        )

        rows: List[dict] = []
        if anchor is None:
            self.logger.debug("Cursor row not found", entity=entity, cursor=str(window.cursor))
        else:
            rows = await self.store.find_many(
                entity,
                all_of(where, seek_after(order, anchor)),
                projection,
                order,
                take=window.limit + 1,
            )

        has_more = len(rows) > window.limit
        items = rows[:window.limit]
        next_cursor = items[-1][window.cursor_field] if has_more else None

        return ListResult(
            items=items,
            pagination=CursorPageInfo(
                limit=window.limit,
                cursor=window.cursor,
                next_cursor=next_cursor,
                has_more=has_more,
                total=total,
            ),
        )
