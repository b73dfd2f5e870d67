"""
Saved-post feed: per-user bookmark listings and save/unsave.
"""

from typing import Any, Dict, Optional

from shared.logging import get_logger
from shared.errors import AuthorizationError, ValidationError
from ..cache.invalidation import POST, SAVED_POST, InvalidationEngine, InvalidationTarget
from ..cache.keys import listing_key
from ..cache.read_through import CachedValue, ReadThroughCache
from ..pagination.engine import PaginationEngine
from ..pagination.filters import Eq, all_of
from ..pagination.models import Window
from .posts import NEWEST_FIRST, CacheTTLs


class SavedPostFeed:
    """Bookmarks. Saving changes the parent post's save count, so every
    mutation also invalidates the parent post as a dependent target."""

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
        self.logger = get_logger("feed.saved_posts")

    async def list_saved(self, user_id: int, window: Window) -> CachedValue:
        where = Eq("userId", user_id)
        key = listing_key(SAVED_POST, user_id, None, window, NEWEST_FIRST)

        async def load():
            result = await self.paginator.paginate(SAVED_POST, where, NEWEST_FIRST, window)
            return result.to_payload()

        return await self.reads.fetch(SAVED_POST, key, self.ttls.listing, load)

    async def save_post(self, user_id: int, post_id: int) -> Optional[Dict[str, Any]]:
        """Bookmark a post; ``None`` when the post does not exist."""
        post = await self.store.find_unique(POST, post_id, projection=("id", "userId"))
        if post is None:
            return None

        duplicate = await self.store.find_first(
            SAVED_POST,
            all_of(Eq("userId", user_id), Eq("postId", post_id)),
            projection=("id",),
        )
        if duplicate is not None:
            raise ValidationError("Post already saved by the user")

        saved = await self.store.create(SAVED_POST, {"userId": user_id, "postId": post_id})
        await self.invalidation.invalidate(
            SAVED_POST,
            owner_id=user_id,
            entity_id=saved["id"],
            parent=InvalidationTarget(POST, owner_id=post["userId"], entity_id=post_id),
        )
        self.logger.info("Post saved", saved_post_id=saved["id"], post_id=post_id, user_id=user_id)
        return saved

    async def remove_saved(self, saved_post_id: int, user_id: int) -> Optional[Dict[str, Any]]:
        """Remove a bookmark; ``None`` when it does not exist."""
        existing = await self.store.find_unique(SAVED_POST, saved_post_id)
        if existing is None:
            return None
        if existing["userId"] != user_id:
            raise AuthorizationError("You are not authorized to remove this saved post")

        removed = await self.store.delete(SAVED_POST, saved_post_id)
        await self.invalidation.invalidate(
            SAVED_POST,
            owner_id=user_id,
            entity_id=saved_post_id,
            parent=InvalidationTarget(POST, owner_id=existing["postOwnerId"], entity_id=existing["postId"]),
        )
        self.logger.info("Saved post removed", saved_post_id=saved_post_id, user_id=user_id)
        return removed
