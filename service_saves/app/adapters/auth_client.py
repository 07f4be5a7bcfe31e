"""
Supabase Auth (GoTrue) client.
"""

from typing import Any, Dict, Optional

from shared.errors import ExternalServiceError
from shared.resilience import retry_on_exception

from .base import READ_RETRY, SupabaseHttpClient, is_transient


class SupabaseAuthClient(SupabaseHttpClient):
    """Validates user access tokens against the identity provider."""

    service = "supabase_auth"

    @retry_on_exception((ExternalServiceError,), config=READ_RETRY, should_retry=is_transient)
    async def get_user(self, access_token: str) -> Optional[Dict[str, Any]]:
        """Return the user owning ``access_token``, or None if it is rejected."""
        try:
            response = await self._request("GET", "/auth/v1/user", access_token=access_token)
        except ExternalServiceError as exc:
            if exc.transient:
                raise
            self.logger.warning("Token rejected by identity provider", status_code=exc.status, error=exc.message)
            return None

        user = response.json()
        if not isinstance(user, dict) or not user.get("id"):
            return None
        return user
