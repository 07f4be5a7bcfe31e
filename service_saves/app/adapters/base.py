"""
Common HTTP plumbing for Supabase adapters.
"""

from typing import Any, Dict, Optional

import httpx

from shared.errors import ExternalServiceError
from shared.logging import get_logger
from shared.resilience import CircuitBreaker, CircuitBreakerOpenException, RetryConfig


# Reads only; uploads and deletes are never replayed
READ_RETRY = RetryConfig(max_attempts=3, base_delay=0.5, max_delay=5.0)


def is_transient(exc: BaseException) -> bool:
    """True for failures worth retrying and counting against the breaker."""
    if isinstance(exc, ExternalServiceError):
        return exc.transient
    return True


class SupabaseHttpClient:
    """Base class for clients of one Supabase API surface."""

    service = "supabase"

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self.transport = transport
        self.logger = get_logger(f"saves.{self.service}_client")
        self.circuit_breaker = CircuitBreaker(
            self.service,
            failure_threshold=3,
            recovery_timeout=30.0,
            should_trip=is_transient,
        )

    def _headers(self, access_token: Optional[str] = None, **extra: str) -> Dict[str, str]:
        """API key plus the caller's JWT so row level security applies."""
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {access_token or self.anon_key}",
        }
        headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        access_token: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, raising ExternalServiceError on any non-2xx answer."""
        url = f"{self.base_url}{path}"
        request_headers = self._headers(access_token, **(headers or {}))

        async def _send() -> httpx.Response:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, url, headers=request_headers, **kwargs)

            if response.is_success:
                return response

            self.logger.error(
                "Supabase request failed",
                method=method,
                url=url,
                status_code=response.status_code,
                response=response.text[:500]
            )
            raise ExternalServiceError(
                service=self.service,
                message=_error_message(response),
                details={"status_code": response.status_code},
                status=response.status_code,
            )

        try:
            return await self.circuit_breaker.call(_send)
        except ExternalServiceError:
            raise
        except CircuitBreakerOpenException as exc:
            raise ExternalServiceError(service=self.service, message=str(exc)) from exc
        except httpx.HTTPError as exc:
            self.logger.error("Supabase transport error", method=method, url=url, error=str(exc))
            raise ExternalServiceError(
                service=self.service,
                message=str(exc) or type(exc).__name__,
                details={"error": type(exc).__name__},
            ) from exc


def _error_message(response: httpx.Response) -> str:
    """Pull the human readable message out of a Supabase error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or f"Unexpected status {response.status_code}"

    if isinstance(body, dict):
        for field in ("message", "msg", "error_description", "error"):
            if body.get(field):
                return str(body[field])
    return f"Unexpected status {response.status_code}"
