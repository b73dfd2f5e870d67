"""
Filter and sort expressions understood by the store adapter.

Filters form a small immutable expression tree over logical field names.
The persistence layer compiles them to SQL; nothing here knows about
tables or columns.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional, Sequence, Tuple, Union


class Direction(str, Enum):
    """Sort direction."""
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class SortField:
    """One ordering term."""
    field: str
    direction: Direction = Direction.ASC

    def token(self) -> str:
        return f"{self.field}.{self.direction.value}"


@dataclass(frozen=True)
class Eq:
    field: str
    value: Any


@dataclass(frozen=True)
class Gt:
    field: str
    value: Any


@dataclass(frozen=True)
class Lt:
    field: str
    value: Any


@dataclass(frozen=True)
class Contains:
    """Case-insensitive substring match."""
    field: str
    term: str


@dataclass(frozen=True)
class And:
    clauses: Tuple["Filter", ...] = ()


@dataclass(frozen=True)
class Or:
    clauses: Tuple["Filter", ...] = ()


Filter = Union[Eq, Gt, Lt, Contains, And, Or]


def all_of(*clauses: Optional[Filter]) -> Optional[Filter]:
    """AND together the given clauses, dropping empty ones."""
    present = tuple(clause for clause in clauses if clause is not None)
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return And(present)


def any_of(clauses: Iterable[Filter]) -> Optional[Filter]:
    """OR together the given clauses."""
    present = tuple(clauses)
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return Or(present)


def build_search_filter(
    search_fields: Sequence[str],
    search_term: Optional[str],
    base: Optional[Filter] = None,
) -> Optional[Filter]:
    """OR a case-insensitive contains across ``search_fields``, AND-ed with ``base``.

    An absent or empty search term returns ``base`` unchanged.
    """
    if not search_term or not search_fields:
        return base

    search = any_of(Contains(field, search_term) for field in search_fields)
    return all_of(search, base)


def seek_after(order_by: Sequence[SortField], anchor: dict) -> Optional[Filter]:
    """Keyset predicate selecting rows strictly after ``anchor`` in ``order_by`` order.

    For terms (f1, f2, ..., fn) this is
    ``f1 > v1 OR (f1 = v1 AND f2 > v2) OR ... (f1..fn-1 equal AND fn > vn)``,
    with ``>`` flipped to ``<`` for descending terms.
    """
    branches = []
    for index, term in enumerate(order_by):
        equal_prefix = [Eq(prior.field, anchor[prior.field]) for prior in order_by[:index]]
        value = anchor[term.field]
        step = Gt(term.field, value) if term.direction == Direction.ASC else Lt(term.field, value)
        branches.append(all_of(*equal_prefix, step))
    return any_of(branches)
