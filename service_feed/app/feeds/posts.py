"""
Post feed: listings, single posts, owner statistics and post mutations.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from shared.logging import get_logger
from shared.errors import AuthorizationError, ValidationError
from ..cache.invalidation import POST, POST_STATS, SAVED_POST, InvalidationEngine
from ..cache.keys import entity_key, listing_key, stats_key
from ..cache.read_through import CachedValue, ReadThroughCache
from ..pagination.engine import PaginationEngine
from ..pagination.filters import Direction, Eq, SortField, build_search_filter
from ..pagination.models import Window

NEWEST_FIRST = (SortField("createdAt", Direction.DESC),)


@dataclass(frozen=True)
class CacheTTLs:
    listing: int = 300
    entity: int = 600
    stats: int = 600


def _clean_captions(captions: Optional[str]) -> str:
    if not captions or not captions.strip():
        raise ValidationError("Captions are required")
    return captions.strip()


class PostFeed:
    """Read-through post reads and invalidating post writes."""

    def __init__(
        self,
        store,
        paginator: PaginationEngine,
        reads: ReadThroughCache,
        invalidation: InvalidationEngine,
        ttls: CacheTTLs = CacheTTLs(),
    ):
        self.store = store
        self.paginator = paginator
        self.reads = reads
        self.invalidation = invalidation
        self.ttls = ttls
        self.logger = get_logger("feed.posts")

    async def list_posts(self, search: Optional[str], window: Window) -> CachedValue:
        """Search listing across every owner."""
        schema = self.store.schema(POST)
        where = build_search_filter(schema.searchable_fields, search)
        key = listing_key(POST, None, search, window, NEWEST_FIRST)

        async def load():
            result = await self.paginator.paginate(POST, where, NEWEST_FIRST, window)
            return result.to_payload()

        return await self.reads.fetch(POST, key, self.ttls.listing, load)

    async def list_owner_posts(self, owner_id: int, window: Window) -> CachedValue:
        """Listing of one owner's posts, shared by the profile and "my posts" views."""
        where = Eq("userId", owner_id)
        key = listing_key(POST, owner_id, None, window, NEWEST_FIRST)

        async def load():
            result = await self.paginator.paginate(POST, where, NEWEST_FIRST, window)
            return result.to_payload()

        return await self.reads.fetch(POST, key, self.ttls.listing, load)

    async def get_post(self, post_id: int) -> CachedValue:
        """Single post; ``value`` is ``None`` when it does not exist."""
        return await self.reads.fetch(
            POST,
            entity_key(POST, post_id),
            self.ttls.entity,
            lambda: self.store.find_unique(POST, post_id),
        )

    async def get_owner_stats(self, owner_id: int) -> CachedValue:
        """Post count and received-save count for one owner."""

        async def load():
            total_posts, total_saves = await asyncio.gather(
                self.store.count(POST, Eq("userId", owner_id)),
                self.store.count(SAVED_POST, Eq("postOwnerId", owner_id)),
            )
            return {"totalPosts": total_posts, "totalSaves": total_saves}

        return await self.reads.fetch(POST_STATS, stats_key(POST_STATS, owner_id), self.ttls.stats, load)

    async def create_post(self, owner_id: int, captions: Optional[str]) -> Dict[str, Any]:
        post = await self.store.create(POST, {"captions": _clean_captions(captions), "userId": owner_id})
        # A new post is not embedded in any saved listing yet
        await self.invalidation.invalidate(POST, owner_id=owner_id, entity_id=post["id"], cascade=False)
        self.logger.info("Post created", post_id=post["id"], owner_id=owner_id)
        return post

    async def update_post(self, post_id: int, user_id: int, captions: Optional[str]) -> Optional[Dict[str, Any]]:
        """Update captions; ``None`` when the post does not exist."""
        cleaned = _clean_captions(captions)
        existing = await self._owned_post(post_id, user_id, "update")
        if existing is None:
            return None

        post = await self.store.update(
            POST,
            post_id,
            {"captions": cleaned, "updatedAt": datetime.now(timezone.utc)},
        )
        await self.invalidation.invalidate(POST, owner_id=existing["userId"], entity_id=post_id)
        self.logger.info("Post updated", post_id=post_id)
        return post

    async def delete_post(self, post_id: int, user_id: int) -> Optional[Dict[str, Any]]:
        """Delete a post; ``None`` when it does not exist."""
        existing = await self._owned_post(post_id, user_id, "delete")
        if existing is None:
            return None

        deleted = await self.store.delete(POST, post_id)
        await self.invalidation.invalidate(POST, owner_id=existing["userId"], entity_id=post_id)
        self.logger.info("Post deleted", post_id=post_id)
        return deleted

    async def _owned_post(self, post_id: int, user_id: int, action: str) -> Optional[Dict[str, Any]]:
        # Mutations check the store directly, never a cached copy
        existing = await self.store.find_unique(POST, post_id)
        if existing is not None and existing["userId"] != user_id:
            raise AuthorizationError(f"You are not authorized to {action} this post")
        return existing
