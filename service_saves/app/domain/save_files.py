"""
Save file workflows.

Every operation is scoped to the authenticated user. The user's listing is
served from ``TTLCache`` when fresh; uploads and deletes drop the cached
listing only after the metadata change has been committed.
"""

import json
import time
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING

from shared.errors import (
    ExternalServiceError,
    NotFoundError,
    PayloadTooLargeError,
    ServiceError,
    ValidationError,
)
from shared.logging import get_logger

from ..caching import TTLCache, save_list_key
from ..models import AuthenticatedUser, SaveListing

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector
    from ..adapters import SaveMetadataRepository, SupabaseStorageClient


DEFAULT_VERSION = "1.0"


@dataclass
class DownloadedFile:
    file_name: str
    content: bytes


def parse_custom_metadata(raw: Optional[str]) -> Dict[str, Any]:
    """Decode the ``custom_metadata`` form field; it must be a JSON object."""
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except ValueError as exc:
        raise ValidationError("custom_metadata must be valid JSON.", details={"error": str(exc)}) from exc
    if not isinstance(value, dict):
        raise ValidationError("custom_metadata must be a JSON object.")
    return value


class SaveFileManager:
    """Coordinates object storage, the metadata table and the listing cache."""

    def __init__(
        self,
        storage: "SupabaseStorageClient",
        metadata: "SaveMetadataRepository",
        cache: TTLCache,
        *,
        max_upload_bytes: int = 50 * 1024 * 1024,
        metrics: Optional["MetricsCollector"] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self.metadata = metadata
        self.cache = cache
        self.max_upload_bytes = max_upload_bytes
        self.metrics = metrics
        self._clock = clock
        self.logger = get_logger("saves.manager")

    async def list_saves(self, user: AuthenticatedUser) -> SaveListing:
        """The user's save files, newest first."""
        cache_key = save_list_key(user.id)
        self.logger.info("Fetching save files for user", cache_key=cache_key)

        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        self.logger.info("No valid cache, fetching from metadata store", cache_key=cache_key)
        try:
            saves = await self.metadata.list_for_user(user.id, access_token=user.access_token)
        except ExternalServiceError as exc:
            self._record("list", "error")
            raise ServiceError("Failed to retrieve save files list.", details={"error": exc.message}) from exc

        # Only successful fetches are cached; an empty list is a valid answer
        self.cache.set(cache_key, saves)
        self._record("list", "ok")
        return saves

    async def upload(
        self,
        user: AuthenticatedUser,
        file_name: str,
        content: bytes,
        content_type: Optional[str] = None,
        version: Optional[str] = None,
        custom_metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Store a save file and its metadata row; returns the row."""
        file_name = PurePosixPath(file_name or "").name
        if not file_name:
            raise ValidationError("No file uploaded.")
        self.check_upload_size(content)

        storage_path = f"{user.id}/{int(self._clock() * 1000)}_{file_name}"
        self.logger.info("Attempting to upload file", file_name=file_name, storage_path=storage_path)

        try:
            await self.storage.upload(storage_path, content, content_type, access_token=user.access_token)
        except ExternalServiceError as exc:
            self._record("upload", "error")
            raise ServiceError("Failed to upload file to storage.", details={"error": exc.message}) from exc

        record = {
            "user_id": user.id,
            "file_name": file_name,
            "storage_path": storage_path,
            "size_bytes": len(content),
            "version": version or DEFAULT_VERSION,
            "custom_metadata": custom_metadata or {},
        }
        try:
            row = await self.metadata.upsert(record, access_token=user.access_token)
        except ExternalServiceError as exc:
            await self._discard_object(user, storage_path)
            self._record("upload", "error")
            raise ServiceError("Failed to save file metadata.", details={"error": exc.message}) from exc

        self.cache.invalidate(save_list_key(user.id))
        self._record("upload", "ok")
        if self.metrics is not None:
            self.metrics.observe_histogram("save_upload_bytes", len(content))
        return row

    def check_upload_size(self, content: bytes) -> None:
        """Raise PayloadTooLargeError when ``content`` exceeds the upload limit."""
        if len(content) > self.max_upload_bytes:
            self._record("upload", "rejected")
            raise PayloadTooLargeError(
                "File too large.",
                details={"max_bytes": self.max_upload_bytes}
            )

    async def download(self, user: AuthenticatedUser, file_name: str) -> DownloadedFile:
        """Fetch the bytes of one of the user's save files."""
        self.logger.info("Attempting to download file", file_name=file_name)
        meta = await self._find(user, file_name, columns=("storage_path", "file_name"))
        if meta is None:
            self._record("download", "not_found")
            raise NotFoundError("Save file not found or access denied.")

        try:
            content = await self.storage.download(meta["storage_path"], access_token=user.access_token)
        except ExternalServiceError as exc:
            self._record("download", "error")
            raise ServiceError("Failed to download file from storage.", details={"error": exc.message}) from exc

        self._record("download", "ok")
        return DownloadedFile(file_name=meta["file_name"], content=content)

    async def delete(self, user: AuthenticatedUser, file_name: str) -> None:
        """Remove a save file object and its metadata row."""
        self.logger.info("Attempting to delete file", file_name=file_name)
        meta = await self._find(user, file_name, columns=("id", "storage_path"))
        if meta is None:
            self._record("delete", "not_found")
            raise NotFoundError("Save file not found or access denied for deletion.")

        try:
            await self.storage.remove([meta["storage_path"]], access_token=user.access_token)
        except ExternalServiceError as exc:
            # Metadata removal proceeds even when the object could not be removed
            self.logger.warning(
                "Storage delete failed, proceeding with metadata deletion",
                storage_path=meta["storage_path"],
                error=exc.message
            )

        try:
            await self.metadata.delete(meta["id"], access_token=user.access_token)
        except ExternalServiceError as exc:
            self._record("delete", "error")
            raise ServiceError("Failed to delete file metadata.", details={"error": exc.message}) from exc

        self.cache.invalidate(save_list_key(user.id))
        self._record("delete", "ok")

    async def _find(self, user: AuthenticatedUser, file_name: str, columns) -> Optional[Dict[str, Any]]:
        try:
            return await self.metadata.find_by_file_name(
                user.id, file_name, columns=columns, access_token=user.access_token
            )
        except ExternalServiceError as exc:
            # Lookup failures are reported as not found
            self.logger.error("Metadata lookup failed", file_name=file_name, error=exc.message)
            return None

    async def _discard_object(self, user: AuthenticatedUser, storage_path: str) -> None:
        try:
            await self.storage.remove([storage_path], access_token=user.access_token)
        except ExternalServiceError as exc:
            self.logger.error("Failed to clean up uploaded object", storage_path=storage_path, error=exc.message)

    def _record(self, operation: str, status: str) -> None:
        if self.metrics is not None:
            self.metrics.record_save_operation(operation, status)
