"""
Authentication dependency for the Save Files Service.
"""

from fastapi import Request

from shared.errors import AuthenticationError, ExternalServiceError, ServiceError
from shared.logging import get_logger, set_user_context

from ..adapters import SupabaseAuthClient
from ..models import AuthenticatedUser


class AuthMiddleware:
    """Resolves the caller from a Supabase bearer token."""

    def __init__(self, auth_client: SupabaseAuthClient):
        self.auth_client = auth_client
        self.logger = get_logger("saves.auth")

    async def authenticate_request(self, request: Request) -> AuthenticatedUser:
        """FastAPI dependency: validate the bearer token and return the user."""
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            raise AuthenticationError("Unauthorized: Missing or invalid Authorization header.")

        token = auth_header[len("Bearer "):].strip()
        if not token:
            raise AuthenticationError("Unauthorized: Missing token.")

        try:
            user = await self.auth_client.get_user(token)
        except ExternalServiceError as exc:
            self.logger.error("Auth provider unavailable", error=exc.message)
            raise ServiceError(
                "Internal server error during authentication.",
                details={"error": exc.message}
            ) from exc

        if user is None:
            raise AuthenticationError("Unauthorized: Invalid token or user not found.")

        authenticated = AuthenticatedUser(id=str(user["id"]), email=user.get("email"), access_token=token)
        set_user_context(authenticated.id)
        request.state.user = authenticated
        self.logger.info("Request authenticated", user_id=authenticated.id)
        return authenticated
