"""
Unit tests for AuthMiddleware.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from fastapi import Request

from service_saves.app.domain.auth import AuthMiddleware
from service_saves.app.models import AuthenticatedUser
from shared.errors import AuthenticationError, ExternalServiceError, ServiceError


class TestAuthMiddleware:
    """Test cases for AuthMiddleware."""

    @pytest.fixture
    def auth_middleware(self):
        """Create AuthMiddleware instance."""
        return AuthMiddleware(AsyncMock())

    @pytest.fixture
    def mock_request(self):
        """Create mock request."""
        request = MagicMock(spec=Request)
        request.headers = {}
        return request

    @pytest.mark.asyncio
    async def test_authenticate_request_success(self, auth_middleware, mock_request):
        """Test a valid bearer token resolves the user."""
        mock_request.headers = {"Authorization": "Bearer valid_token"}
        auth_middleware.auth_client.get_user = AsyncMock(
            return_value={"id": "user-42", "email": "player@example.com"}
        )

        user = await auth_middleware.authenticate_request(mock_request)

        assert user == AuthenticatedUser(id="user-42", email="player@example.com", access_token="valid_token")
        assert mock_request.state.user == user
        auth_middleware.auth_client.get_user.assert_called_once_with("valid_token")

    @pytest.mark.asyncio
    async def test_missing_header(self, auth_middleware, mock_request):
        """Test missing Authorization header."""
        with pytest.raises(AuthenticationError) as exc_info:
            await auth_middleware.authenticate_request(mock_request)

        assert exc_info.value.message == "Unauthorized: Missing or invalid Authorization header."
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_scheme(self, auth_middleware, mock_request):
        """Test a non-Bearer scheme is rejected."""
        mock_request.headers = {"Authorization": "Basic dXNlcjpwYXNz"}

        with pytest.raises(AuthenticationError) as exc_info:
            await auth_middleware.authenticate_request(mock_request)

        assert exc_info.value.message == "Unauthorized: Missing or invalid Authorization header."

    @pytest.mark.asyncio
    async def test_empty_token(self, auth_middleware, mock_request):
        """Test 'Bearer ' with nothing after it."""
        mock_request.headers = {"Authorization": "Bearer   "}

        with pytest.raises(AuthenticationError) as exc_info:
            await auth_middleware.authenticate_request(mock_request)

        assert exc_info.value.message == "Unauthorized: Missing token."
        auth_middleware.auth_client.get_user.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_token(self, auth_middleware, mock_request):
        """Test a token the provider rejects."""
        mock_request.headers = {"Authorization": "Bearer expired"}
        auth_middleware.auth_client.get_user = AsyncMock(return_value=None)

        with pytest.raises(AuthenticationError) as exc_info:
            await auth_middleware.authenticate_request(mock_request)

        assert exc_info.value.message == "Unauthorized: Invalid token or user not found."

    @pytest.mark.asyncio
    async def test_provider_unavailable(self, auth_middleware, mock_request):
        """Test provider outages are server errors, not 401s."""
        mock_request.headers = {"Authorization": "Bearer valid_token"}
        auth_middleware.auth_client.get_user = AsyncMock(
            side_effect=ExternalServiceError("supabase_auth", "timed out")
        )

        with pytest.raises(ServiceError) as exc_info:
            await auth_middleware.authenticate_request(mock_request)

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "Internal server error during authentication."
