"""
Save Files service for the Cloud Save Backend.
"""

import json
from pathlib import Path
from string import Template
from typing import Callable, Dict, List, Optional
from urllib.parse import quote

import httpx
from fastapi import Depends, File, Form, UploadFile
from fastapi.responses import HTMLResponse, Response
from fastapi.staticfiles import StaticFiles

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import ValidationError

from .adapters import SaveMetadataRepository, SupabaseAuthClient, SupabaseStorageClient
from .caching import TTLCache
from .domain import AuthMiddleware, SaveFileManager, parse_custom_metadata
from .models import AuthenticatedUser, MessageResponse, SaveFileMetadata, UploadResponse

STATIC_DIR = Path(__file__).parent / "static"


class SavesService(BaseService):
    """Save files service implementation.

    The listing cache lives exactly as long as this object; handlers reach
    it through ``self.cache`` / ``self.saves``.
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cache_clock: Optional[Callable[[], float]] = None,
    ):
        super().__init__("saves", config)

        client_options = {
            "timeout": self.config.supabase_timeout_seconds,
            "transport": transport,
        }
        base_url = self.config.supabase_base_url
        anon_key = self.config.supabase_anon_key or ""

        self.auth_client = SupabaseAuthClient(base_url, anon_key, **client_options)
        self.storage = SupabaseStorageClient(
            base_url, anon_key, bucket=self.config.storage_bucket, **client_options
        )
        self.metadata = SaveMetadataRepository(
            base_url, anon_key, table=self.config.metadata_table, **client_options
        )

        cache_options = {"clock": cache_clock} if cache_clock is not None else {}
        self.cache = TTLCache(self.config.cache_ttl_ms, metrics=self.metrics, **cache_options)
        self.saves = SaveFileManager(
            self.storage,
            self.metadata,
            self.cache,
            max_upload_bytes=self.config.max_upload_bytes,
            metrics=self.metrics,
        )
        self.auth = AuthMiddleware(self.auth_client)

        self._index_template = Template((STATIC_DIR / "index.html").read_text(encoding="utf-8"))
        self._setup_saves_routes()

    def _setup_saves_routes(self):
        """Set up save-file routes."""

        self.app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")
        current_user = Depends(self.auth.authenticate_request)

        @self.app.get("/", response_class=HTMLResponse)
        async def index():
            """Browser client with the public Supabase settings injected."""
            return HTMLResponse(self.render_index())

        @self.app.get("/api/saves", response_model=List[SaveFileMetadata])
        async def list_saves(user: AuthenticatedUser = current_user):
            """List all save files for the authenticated user."""
            return await self.saves.list_saves(user)

        @self.app.post("/api/saves/upload", status_code=201, response_model=UploadResponse)
        async def upload_save(
            user: AuthenticatedUser = current_user,
            savefile: Optional[UploadFile] = File(None),
            version: Optional[str] = Form(None),
            custom_metadata: Optional[str] = Form(None),
        ):
            """Upload a new save file, replacing one with the same name."""
            if savefile is None or not savefile.filename:
                raise ValidationError("No file uploaded.")

            # One byte past the limit is enough for the size check
            content = await savefile.read(self.config.max_upload_bytes + 1)
            self.saves.check_upload_size(content)

            metadata = parse_custom_metadata(custom_metadata)

            row = await self.saves.upload(
                user,
                savefile.filename,
                content,
                content_type=savefile.content_type,
                version=version,
                custom_metadata=metadata,
            )
            return UploadResponse(message="File uploaded successfully.", data=row)

        @self.app.get("/api/saves/download/{file_name}")
        async def download_save(file_name: str, user: AuthenticatedUser = current_user):
            """Download one of the user's save files."""
            downloaded = await self.saves.download(user, file_name)
            return Response(
                content=downloaded.content,
                media_type="application/octet-stream",
                headers={"Content-Disposition": content_disposition(downloaded.file_name)},
            )

        @self.app.delete("/api/saves/{file_name}", response_model=MessageResponse)
        async def delete_save(file_name: str, user: AuthenticatedUser = current_user):
            """Delete one of the user's save files."""
            await self.saves.delete(user, file_name)
            return MessageResponse(message=f"Save file '{file_name}' deleted successfully.")

    def render_index(self) -> str:
        """Fill the index page with the public Supabase settings."""
        return self._index_template.safe_substitute(
            supabase_url=_script_literal(self.config.supabase_url or ""),
            supabase_anon_key=_script_literal(self.config.supabase_anon_key or ""),
        )

    async def _check_dependencies(self) -> Dict[str, str]:
        """Report platform configuration and circuit breaker states."""
        dependencies = {"supabase": "configured" if self.config.supabase_configured else "unconfigured"}
        for client in (self.auth_client, self.storage, self.metadata):
            dependencies[client.service] = client.circuit_breaker.state.value
        return dependencies

    async def start(self):
        """Start save service components."""
        self.logger.info("Saves service started", port=self.config.port, cache_ttl_ms=self.cache.ttl_ms)
        if not self.config.supabase_configured:
            self.logger.warning(
                "SUPABASE_URL or SUPABASE_ANON_KEY is not set. Backend may not function correctly."
            )

    async def stop(self):
        """Stop save service components."""
        self.logger.info("Saves service stopped", cached_listings=len(self.cache))


def content_disposition(file_name: str) -> str:
    """Attachment header; non-ASCII names use the RFC 5987 form."""
    if file_name.isascii() and '"' not in file_name:
        return f'attachment; filename="{file_name}"'
    return f"attachment; filename*=UTF-8''{quote(file_name)}"


def _script_literal(value: str) -> str:
    """JSON string literal that is safe inside a <script> element."""
    return json.dumps(value).replace("</", "<\\/")


def create_app():
    """Create save files service application."""
    service = SavesService()
    return service.app


def main():
    service = SavesService()
    service.run()


if __name__ == "__main__":
    main()
