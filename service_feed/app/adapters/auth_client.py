"""
Auth service client for Feed Service.
"""

from typing import Any, Dict

import httpx

from shared.logging import get_logger
from shared.errors import AuthenticationError, ExternalServiceError


class AuthClient:
    """Client for communicating with the Auth service."""

    def __init__(self, auth_service_url: str, timeout: float = 10.0):
        self.auth_service_url = auth_service_url.rstrip("/")
        self.timeout = timeout
        self.logger = get_logger("feed.auth_client")

    async def verify_token(self, token: str) -> Dict[str, Any]:
        """Verify an access token and return the authenticated user."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.auth_service_url}/auth/verify",
                    json={"token": token}
                )
        except httpx.HTTPError as e:
            self.logger.error("Auth service HTTP error", error=str(e))
            raise ExternalServiceError("auth", "Auth service unavailable", details={"http_error": str(e)})

        if response.status_code in (401, 403):
            raise AuthenticationError("Invalid token")
        if response.status_code != 200:
            raise ExternalServiceError(
                "auth",
                f"Auth service error: {response.status_code}",
                details={"status_code": response.status_code}
            )

        result = response.json()
        user = result.get("user") or {}
        if not result.get("valid") or user.get("id") is None:
            self.logger.warning("Token validation failed", error=result.get("error"))
            raise AuthenticationError("Invalid token")

        return user
