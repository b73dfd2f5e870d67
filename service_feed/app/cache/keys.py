"""
Cache key derivation.

Keys are colon-separated segments, most general first:

    <namespace>:list:<scope...>:<sort>:q=<term>:<window>:limit=<n>
    <namespace>:id:<entity id>
    <namespace>:owner:<owner id>

Every caller-supplied value is percent-encoded, so a segment never
contains the separator or a glob metacharacter. Any key therefore turns
into the pattern for its family by replacing trailing segments with
``*``, which is how the invalidation engine addresses listing families.
"""

from typing import Any, Optional, Sequence
from urllib.parse import quote

from ..pagination.filters import SortField
from ..pagination.models import CursorWindow, OffsetWindow, Window

SEPARATOR = ":"
WILDCARD = "*"

LIST = "list"
ENTITY = "id"
OWNER = "owner"
ALL = "all"


def _encode(value: Any) -> str:
    return quote(str(value), safe="")


def _join(*segments: str) -> str:
    return SEPARATOR.join(segments)


def scope_segments(owner_id: Optional[Any]) -> Sequence[str]:
    """Listing scope: every row, or the rows of one owner."""
    if owner_id is None:
        return (ALL,)
    return (OWNER, _encode(owner_id))


def _sort_segment(order_by: Sequence[SortField]) -> str:
    return ",".join(term.token() for term in order_by) or "natural"


def _search_segment(search_term: Optional[str]) -> str:
    # Search is case-insensitive, so terms differing only in case share a key
    return "q=" + _encode((search_term or "").lower())


def _window_segment(window: Window) -> str:
    if isinstance(window, CursorWindow):
        return f"after={_encode(window.cursor_field)}.{_encode(window.cursor)}"
    if isinstance(window, OffsetWindow):
        return f"page={window.page}"
    raise TypeError(f"Unsupported pagination window: {type(window).__name__}")


def listing_key(
    namespace: str,
    owner_id: Optional[Any],
    search_term: Optional[str],
    window: Window,
    order_by: Sequence[SortField] = (),
) -> str:
    """Key for one page of a listing."""
    return _join(
        namespace,
        LIST,
        *scope_segments(owner_id),
        _sort_segment(order_by),
        _search_segment(search_term),
        _window_segment(window),
        f"limit={window.limit}",
    )


def entity_key(namespace: str, entity_id: Any) -> str:
    """Key for a single entity read."""
    return _join(namespace, ENTITY, _encode(entity_id))


def stats_key(namespace: str, owner_id: Any) -> str:
    """Key for an owner-scoped aggregate."""
    return _join(namespace, OWNER, _encode(owner_id))


def wildcard(key: str, trailing: int = 1) -> str:
    """Replace the last ``trailing`` segments of ``key`` with a single wildcard."""
    segments = key.split(SEPARATOR)
    if trailing < 1 or trailing >= len(segments):
        raise ValueError(f"cannot wildcard {trailing} segment(s) of '{key}'")
    return _join(*segments[:-trailing], WILDCARD)


def listing_pattern(namespace: str, owner_id: Optional[Any] = None) -> str:
    """Pattern for every page of one listing scope (``all`` when no owner)."""
    return _join(namespace, LIST, *scope_segments(owner_id), WILDCARD)


def listing_family_pattern(namespace: str) -> str:
    """Pattern for every listing of a namespace regardless of scope."""
    return _join(namespace, LIST, WILDCARD)
