"""
Unit tests for the auth client and cookie authentication.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from shared.errors import AuthenticationError, ExternalServiceError
from service_feed.app.adapters.auth_client import AuthClient
from service_feed.app.domain.auth_middleware import AuthMiddleware

POST = "service_feed.app.adapters.auth_client.httpx.AsyncClient.post"


class TestAuthClient:
    """Token verification against the auth service."""

    @pytest.fixture
    def client(self):
        return AuthClient("http://auth:8010/")

    @pytest.mark.asyncio
    async def test_valid_token(self, client):
        response = httpx.Response(200, json={"valid": True, "user": {"id": 1, "email": "ada@example.com"}})

        with patch(POST, AsyncMock(return_value=response)) as post:
            user = await client.verify_token("token-1")

        assert user == {"id": 1, "email": "ada@example.com"}
        post.assert_awaited_once_with("http://auth:8010/auth/verify", json={"token": "token-1"})

    @pytest.mark.asyncio
    async def test_invalid_token(self, client):
        response = httpx.Response(200, json={"valid": False, "error": "expired"})

        with patch(POST, AsyncMock(return_value=response)):
            with pytest.raises(AuthenticationError):
                await client.verify_token("stale")

    @pytest.mark.asyncio
    async def test_rejected_token(self, client):
        with patch(POST, AsyncMock(return_value=httpx.Response(401, json={}))):
            with pytest.raises(AuthenticationError):
                await client.verify_token("bad")

    @pytest.mark.asyncio
    async def test_auth_service_error(self, client):
        with patch(POST, AsyncMock(return_value=httpx.Response(500, json={}))):
            with pytest.raises(ExternalServiceError):
                await client.verify_token("token-1")

    @pytest.mark.asyncio
    async def test_auth_service_unreachable(self, client):
        with patch(POST, AsyncMock(side_effect=httpx.ConnectError("refused"))):
            with pytest.raises(ExternalServiceError) as exc_info:
                await client.verify_token("token-1")

        assert exc_info.value.service == "auth"


class TestAuthMiddleware:
    """Cookie authentication."""

    @staticmethod
    def request(cookies):
        request = MagicMock()
        request.cookies = cookies
        return request

    @pytest.mark.asyncio
    async def test_missing_cookie(self, auth_client):
        with pytest.raises(AuthenticationError):
            await AuthMiddleware(auth_client).authenticate_request(self.request({}))

    @pytest.mark.asyncio
    async def test_cookie_resolves_user(self, auth_client):
        request = self.request({"accessToken": "grace-token"})

        user = await AuthMiddleware(auth_client).authenticate_request(request)

        assert user["id"] == 2
        assert request.state.user == user
