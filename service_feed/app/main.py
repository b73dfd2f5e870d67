"""
Feed service: posts, saved posts and the user directory behind a
read-through Redis cache.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel

from shared.base_service import BaseService
from shared.errors import NotFoundError
from .adapters.auth_client import AuthClient
from .cache.invalidation import POST, SAVED_POST, InvalidationEngine
from .cache.read_through import CachedValue, ReadThroughCache
from .cache.redis_cache import RedisCache
from .domain.auth_middleware import AuthMiddleware
from .feeds.posts import CacheTTLs, PostFeed
from .feeds.saved_posts import SavedPostFeed
from .feeds.users import USER, UserDirectory
from .pagination.engine import PaginationEngine
from .persistence.postgres import PostgreSQLStore


class PostBody(BaseModel):
    captions: Optional[str] = None


class SavePostBody(BaseModel):
    postId: int


def envelope(message: str, data: Any = None, cached: Optional[bool] = None) -> Dict[str, Any]:
    body = {"success": True, "message": message, "data": data}
    if cached is not None:
        body["cached"] = cached
    return body


def cached_envelope(message: str, result: CachedValue) -> Dict[str, Any]:
    return envelope(message, result.value, cached=result.cached)


class FeedService(BaseService):
    """Feed service implementation."""

    def __init__(
        self,
        store: Optional[PostgreSQLStore] = None,
        cache: Optional[RedisCache] = None,
        auth_client: Optional[AuthClient] = None,
    ):
        super().__init__("feed", 8020)

        # Initialize components
        self.store = store or PostgreSQLStore(
            self.config.postgres_dsn,
            command_timeout=self.config.store_command_timeout
        )
        self.cache = cache or RedisCache(
            self.config.redis_url,
            socket_timeout=self.config.cache_socket_timeout
        )
        self.auth = AuthMiddleware(auth_client or AuthClient(self.config.auth_service_url))

        ttls = CacheTTLs(
            listing=self.config.listing_cache_ttl,
            entity=self.config.entity_cache_ttl,
            stats=self.config.stats_cache_ttl,
        )
        self.paginator = PaginationEngine(self.store, default_limit=self.config.default_page_limit)
        self.reads = ReadThroughCache(self.cache, self.metrics)
        self.invalidation = InvalidationEngine(self.cache, self.metrics)

        self.posts = PostFeed(self.store, self.paginator, self.reads, self.invalidation, ttls)
        self.saved_posts = SavedPostFeed(self.store, self.paginator, self.reads, self.invalidation, ttls)
        self.users = UserDirectory(self.store, self.paginator)

        self._setup_feed_routes()

    def _setup_feed_routes(self):
        """Set up feed-specific routes."""

        async def current_user(request: Request) -> Dict[str, Any]:
            return await self.auth.authenticate_request(request)

        def window(entity: str, page, limit, cursor, cursor_field):
            return self.paginator.window_from_params(entity, page, limit, cursor, cursor_field)

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "feed",
                "message": "Social feed backend - Feed Service",
                "version": "1.0.0",
                "capabilities": ["pagination", "read_through_cache", "invalidation"]
            }

        posts = APIRouter(prefix="/api/post")

        @posts.get("/posts")
        async def list_posts(
            search: Optional[str] = None,
            page: Optional[str] = None,
            limit: Optional[str] = None,
            cursor: Optional[str] = None,
            cursorField: Optional[str] = None,
        ):
            result = await self.posts.list_posts(search, window(POST, page, limit, cursor, cursorField))
            return cached_envelope("Posts fetched successfully", result)

        @posts.get("/posts/user/{user_id}")
        async def list_user_posts(
            user_id: int,
            page: Optional[str] = None,
            limit: Optional[str] = None,
            cursor: Optional[str] = None,
            cursorField: Optional[str] = None,
        ):
            result = await self.posts.list_owner_posts(user_id, window(POST, page, limit, cursor, cursorField))
            return cached_envelope("User posts fetched successfully", result)

        @posts.get("/posts/{post_id}")
        async def get_post(post_id: int):
            result = await self.posts.get_post(post_id)
            if result.value is None:
                raise NotFoundError("Post not found")
            return cached_envelope("Post fetched successfully", result)

        @posts.post("/posts", status_code=201)
        async def create_post(body: PostBody, user: Dict[str, Any] = Depends(current_user)):
            post = await self.posts.create_post(user["id"], body.captions)
            return envelope("Post created successfully", jsonable_encoder(post))

        @posts.put("/posts/{post_id}")
        async def update_post(post_id: int, body: PostBody, user: Dict[str, Any] = Depends(current_user)):
            post = await self.posts.update_post(post_id, user["id"], body.captions)
            if post is None:
                raise NotFoundError("Post not found")
            return envelope("Post updated successfully", jsonable_encoder(post))

        @posts.delete("/posts/{post_id}")
        async def delete_post(post_id: int, user: Dict[str, Any] = Depends(current_user)):
            if await self.posts.delete_post(post_id, user["id"]) is None:
                raise NotFoundError("Post not found")
            return envelope("Post deleted successfully")

        @posts.get("/my-posts")
        async def my_posts(
            page: Optional[str] = None,
            limit: Optional[str] = None,
            cursor: Optional[str] = None,
            cursorField: Optional[str] = None,
            user: Dict[str, Any] = Depends(current_user),
        ):
            result = await self.posts.list_owner_posts(user["id"], window(POST, page, limit, cursor, cursorField))
            return cached_envelope("Your posts fetched successfully", result)

        @posts.get("/my-posts/stats")
        async def my_post_stats(user: Dict[str, Any] = Depends(current_user)):
            result = await self.posts.get_owner_stats(user["id"])
            return cached_envelope("Post stats fetched successfully", result)

        saved = APIRouter(prefix="/api/savedPosts")

        @saved.post("/", status_code=201)
        async def save_post(body: SavePostBody, user: Dict[str, Any] = Depends(current_user)):
            saved_post = await self.saved_posts.save_post(user["id"], body.postId)
            if saved_post is None:
                raise NotFoundError("Post not found")
            return envelope("Post saved successfully", jsonable_encoder(saved_post))

        @saved.get("/user/{user_id}")
        async def list_user_saved(
            user_id: int,
            page: Optional[str] = None,
            limit: Optional[str] = None,
            cursor: Optional[str] = None,
            cursorField: Optional[str] = None,
        ):
            result = await self.saved_posts.list_saved(user_id, window(SAVED_POST, page, limit, cursor, cursorField))
            return cached_envelope("Saved posts fetched successfully", result)

        @saved.get("/my-posts")
        async def my_saved(
            page: Optional[str] = None,
            limit: Optional[str] = None,
            cursor: Optional[str] = None,
            cursorField: Optional[str] = None,
            user: Dict[str, Any] = Depends(current_user),
        ):
            result = await self.saved_posts.list_saved(user["id"], window(SAVED_POST, page, limit, cursor, cursorField))
            return cached_envelope("Your saved posts fetched successfully", result)

        @saved.delete("/{saved_post_id}")
        async def remove_saved(saved_post_id: int, user: Dict[str, Any] = Depends(current_user)):
            if await self.saved_posts.remove_saved(saved_post_id, user["id"]) is None:
                raise NotFoundError("Saved post not found")
            return envelope("Saved post removed successfully")

        users = APIRouter(prefix="/api/user")

        @users.get("/users")
        async def list_users(
            search: Optional[str] = None,
            page: Optional[str] = None,
            limit: Optional[str] = None,
            cursor: Optional[str] = None,
            cursorField: Optional[str] = None,
        ):
            result = await self.users.list_users(search, window(USER, page, limit, cursor, cursorField))
            return envelope("Users fetched successfully", result.to_payload())

        @users.get("/users/{user_id}")
        async def get_user(user_id: int):
            found = await self.users.get_user(user_id)
            if found is None:
                raise NotFoundError("User not found")
            return envelope("User fetched successfully", jsonable_encoder(found))

        @users.get("/me")
        async def me(user: Dict[str, Any] = Depends(current_user)):
            found = await self.users.get_user(user["id"])
            if found is None:
                raise NotFoundError("User not found")
            return envelope("User fetched successfully", jsonable_encoder(found))

        for router in (posts, saved, users):
            self.app.include_router(router)

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check service dependencies."""
        dependencies = {}

        try:
            dependencies["redis"] = "ok" if await self.cache.health_check() else "error"
        except Exception:
            dependencies["redis"] = "error"

        try:
            dependencies["postgres"] = "ok" if await self.store.health_check() else "error"
        except Exception:
            dependencies["postgres"] = "error"

        return dependencies

    async def start(self):
        """Start service components."""
        await self.cache.start()
        await self.store.start()
        self.logger.info("Feed service started")

    async def stop(self):
        """Stop service components."""
        await self.store.stop()
        await self.cache.stop()
        self.logger.info("Feed service stopped")


def create_app(**components):
    """Create the FastAPI application."""
    return FeedService(**components).app


if __name__ == "__main__":
    FeedService().run()
