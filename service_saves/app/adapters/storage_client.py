"""
Supabase Storage client for save file objects.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

from shared.errors import ExternalServiceError
from shared.resilience import retry_on_exception

from .base import READ_RETRY, SupabaseHttpClient, is_transient


class SupabaseStorageClient(SupabaseHttpClient):
    """Reads and writes objects in one storage bucket."""

    service = "supabase_storage"

    def __init__(self, base_url: str, anon_key: str, *, bucket: str = "save-files", **kwargs):
        super().__init__(base_url, anon_key, **kwargs)
        self.bucket = bucket

    def _object_path(self, path: str) -> str:
        return f"/storage/v1/object/{self.bucket}/{quote(path)}"

    async def upload(
        self,
        path: str,
        content: bytes,
        content_type: Optional[str],
        access_token: Optional[str] = None,
        upsert: bool = True,
    ) -> Dict[str, Any]:
        """Upload ``content`` to ``path``, overwriting when ``upsert`` is set."""
        response = await self._request(
            "POST",
            self._object_path(path),
            access_token=access_token,
            headers={
                "Content-Type": content_type or "application/octet-stream",
                "x-upsert": "true" if upsert else "false",
            },
            content=content,
        )
        self.logger.info("Object uploaded", bucket=self.bucket, path=path, size_bytes=len(content))
        return response.json()

    @retry_on_exception((ExternalServiceError,), config=READ_RETRY, should_retry=is_transient)
    async def download(self, path: str, access_token: Optional[str] = None) -> bytes:
        """Download the object stored at ``path``."""
        response = await self._request("GET", self._object_path(path), access_token=access_token)
        return response.content

    async def remove(self, paths: List[str], access_token: Optional[str] = None) -> List[Dict[str, Any]]:
        """Delete objects by path; returns the objects actually removed."""
        response = await self._request(
            "DELETE",
            f"/storage/v1/object/{self.bucket}",
            access_token=access_token,
            json={"prefixes": paths},
        )
        self.logger.info("Objects removed", bucket=self.bucket, paths=paths)
        return response.json()
