"""
Save metadata table access through Supabase's PostgREST API.
"""

from typing import Any, Dict, List, Optional, Sequence

from shared.errors import ExternalServiceError
from shared.resilience import retry_on_exception

from .base import READ_RETRY, SupabaseHttpClient, is_transient


LIST_COLUMNS = ("id", "file_name", "size_bytes", "version", "custom_metadata", "updated_at")


class SaveMetadataRepository(SupabaseHttpClient):
    """CRUD over the ``save_metadata`` table."""

    service = "supabase_rest"

    def __init__(self, base_url: str, anon_key: str, *, table: str = "save_metadata", **kwargs):
        super().__init__(base_url, anon_key, **kwargs)
        self.table = table

    @property
    def _table_path(self) -> str:
        return f"/rest/v1/{self.table}"

    @retry_on_exception((ExternalServiceError,), config=READ_RETRY, should_retry=is_transient)
    async def list_for_user(self, user_id: str, access_token: Optional[str] = None) -> List[Dict[str, Any]]:
        """All metadata rows for a user, most recently updated first."""
        response = await self._request(
            "GET",
            self._table_path,
            access_token=access_token,
            params={
                "select": ",".join(LIST_COLUMNS),
                "user_id": f"eq.{user_id}",
                "order": "updated_at.desc",
            },
        )
        return response.json()

    @retry_on_exception((ExternalServiceError,), config=READ_RETRY, should_retry=is_transient)
    async def find_by_file_name(
        self,
        user_id: str,
        file_name: str,
        columns: Sequence[str] = ("id", "storage_path", "file_name"),
        access_token: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """The user's row for ``file_name``, or None when absent."""
        response = await self._request(
            "GET",
            self._table_path,
            access_token=access_token,
            params={
                "select": ",".join(columns),
                "user_id": f"eq.{user_id}",
                "file_name": f"eq.{file_name}",
                "limit": "1",
            },
        )
        rows = response.json()
        return rows[0] if rows else None

    async def upsert(self, record: Dict[str, Any], access_token: Optional[str] = None) -> Dict[str, Any]:
        """Insert or update by (user_id, file_name) and return the stored row."""
        response = await self._request(
            "POST",
            self._table_path,
            access_token=access_token,
            params={"on_conflict": "user_id,file_name"},
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
            json=record,
        )
        rows = response.json()
        if not rows:
            raise ExternalServiceError(service=self.service, message="Upsert returned no rows")
        return rows[0]

    async def delete(self, record_id: Any, access_token: Optional[str] = None) -> None:
        """Delete a row by primary key."""
        await self._request(
            "DELETE",
            self._table_path,
            access_token=access_token,
            params={"id": f"eq.{record_id}"},
        )
