"""
User directory reads. Users are not mutated by this service, so these
reads go straight to the store.
"""

from typing import Any, Dict, Optional

from ..pagination.engine import PaginationEngine
from ..pagination.filters import build_search_filter
from ..pagination.models import ListResult, Window
from .posts import NEWEST_FIRST

USER = "user"


class UserDirectory:

    def __init__(self, store, paginator: PaginationEngine):
        self.store = store
        self.paginator = paginator

    async def list_users(self, search: Optional[str], window: Window) -> ListResult:
        schema = self.store.schema(USER)
        where = build_search_filter(schema.searchable_fields, search)
        return await self.paginator.paginate(USER, where, NEWEST_FIRST, window)

    async def get_user(self, user_id: int) -> Optional[Dict[str, Any]]:
        return await self.store.find_unique(USER, user_id)
