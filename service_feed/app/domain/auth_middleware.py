"""
Authentication for Feed Service routes.
"""

from typing import Any, Dict

from fastapi import Request

from shared.logging import get_logger, set_user_context
from shared.errors import AuthenticationError
from ..adapters.auth_client import AuthClient

ACCESS_TOKEN_COOKIE = "accessToken"


class AuthMiddleware:
    """Resolves the caller from the access-token cookie."""

    def __init__(self, auth_client: AuthClient):
        self.auth_client = auth_client
        self.logger = get_logger("feed.auth_middleware")

    async def authenticate_request(self, request: Request) -> Dict[str, Any]:
        """Authenticate the request and return the caller's user record."""
        token = request.cookies.get(ACCESS_TOKEN_COOKIE)
        if not token:
            raise AuthenticationError("Unauthorized request")

        user = await self.auth_client.verify_token(token)

        request.state.user = user
        set_user_context(user["id"])
        self.logger.debug("Request authenticated", user_id=user["id"])

        return user
