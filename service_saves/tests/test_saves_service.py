"""
Unit tests for the Save Files service routes.
"""

import pytest
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient

from service_saves.app.caching import save_list_key
from service_saves.app.main import SavesService, content_disposition
from shared.config import get_config
from shared.errors import ExternalServiceError

AUTH = {"Authorization": "Bearer user-jwt"}


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestSavesService:
    """Test cases for SavesService."""

    @pytest.fixture
    def cache_clock(self):
        return FakeClock()

    @pytest.fixture
    def config(self):
        return get_config(
            "saves",
            env="local",
            supabase_url="https://project.supabase.co",
            supabase_anon_key="anon-key",
            max_upload_bytes=64,
        )

    @pytest.fixture
    def service(self, config, cache_clock):
        """Create SavesService with its platform adapters mocked."""
        service = SavesService(config, cache_clock=cache_clock)
        service.auth_client.get_user = AsyncMock(return_value={"id": "42", "email": "player@example.com"})
        service.metadata.list_for_user = AsyncMock(return_value=[
            {
                "id": 1,
                "file_name": "slot1.sav",
                "size_bytes": 12,
                "version": "1.0",
                "custom_metadata": {},
                "updated_at": "2024-05-01T10:00:00+00:00",
            }
        ])
        service.metadata.find_by_file_name = AsyncMock(return_value={
            "id": 1,
            "file_name": "slot1.sav",
            "storage_path": "42/1700000000000_slot1.sav",
        })
        service.metadata.upsert = AsyncMock(side_effect=lambda record, access_token=None: {"id": 2, **record})
        service.metadata.delete = AsyncMock(return_value=None)
        service.storage.upload = AsyncMock(return_value={"Key": "save-files/42/x"})
        service.storage.download = AsyncMock(return_value=b"\x00save-data")
        service.storage.remove = AsyncMock(return_value=[])
        return service

    @pytest.fixture
    def client(self, service):
        """Create test client."""
        return TestClient(service.app)

    def test_index_page(self, client):
        """Test the browser client gets the public Supabase settings."""
        response = client.get("/")
        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert 'const SUPABASE_URL = "https://project.supabase.co";' in response.text
        assert 'const SUPABASE_ANON_KEY = "anon-key";' in response.text

    def test_static_client_script(self, client):
        """Test the client script is served."""
        response = client.get("/static/app.js")
        assert response.status_code == 200
        assert "supabaseClient" in response.text

    def test_health_endpoint(self, client):
        """Test health reports configuration and breaker states."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "saves"
        assert data["status"] == "ok"
        assert data["dependencies"] == {
            "supabase": "configured",
            "supabase_auth": "closed",
            "supabase_storage": "closed",
            "supabase_rest": "closed",
        }

    def test_metrics_endpoint(self, client):
        """Test Prometheus exposition includes cache and HTTP metrics."""
        client.get("/api/saves", headers=AUTH)
        client.get("/api/saves", headers=AUTH)

        response = client.get("/metrics")
        assert response.status_code == 200
        body = response.text
        assert 'cloud_save_backend_cache_hits_total{cache="save_list"} 1.0' in body
        assert 'cloud_save_backend_cache_misses_total{cache="save_list"} 1.0' in body
        assert 'cloud_save_backend_http_requests_total{method="GET",endpoint="/api/saves",status_code="200"} 2.0' in body

    def test_request_id_echoed(self, client):
        """Test X-Request-ID is propagated to the response."""
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_request_id_generated(self, client):
        """Test a request ID is generated when absent."""
        response = client.get("/health")
        assert response.headers["X-Request-ID"]

    def test_list_requires_auth(self, client, service):
        """Test missing credentials are a 401."""
        response = client.get("/api/saves")
        assert response.status_code == 401
        data = response.json()
        assert data["code"] == "AUTHENTICATION_ERROR"
        assert data["message"] == "Unauthorized: Missing or invalid Authorization header."
        service.metadata.list_for_user.assert_not_called()

    def test_list_invalid_token(self, client, service):
        """Test a rejected token is a 401."""
        service.auth_client.get_user = AsyncMock(return_value=None)

        response = client.get("/api/saves", headers=AUTH)
        assert response.status_code == 401
        assert response.json()["message"] == "Unauthorized: Invalid token or user not found."

    def test_auth_provider_down(self, client, service):
        """Test an identity provider outage is a 500."""
        service.auth_client.get_user = AsyncMock(side_effect=ExternalServiceError("supabase_auth", "timed out"))

        response = client.get("/api/saves", headers=AUTH)
        assert response.status_code == 500
        assert response.json()["message"] == "Internal server error during authentication."

    def test_list_saves_null_custom_metadata(self, client, service):
        """Test rows stored with NULL custom_metadata are listed as-is."""
        row = {
            "id": 7,
            "file_name": "legacy.sav",
            "size_bytes": 3,
            "version": None,
            "custom_metadata": None,
            "updated_at": "2023-01-01T00:00:00+00:00",
        }
        service.metadata.list_for_user = AsyncMock(return_value=[row])

        first = client.get("/api/saves", headers=AUTH)
        second = client.get("/api/saves", headers=AUTH)

        assert first.status_code == 200
        assert first.json() == [row]
        assert second.status_code == 200
        assert second.json() == [row]
        service.metadata.list_for_user.assert_called_once()

    def test_list_saves_cached(self, client, service):
        """Test the second listing is served from cache."""
        first = client.get("/api/saves", headers=AUTH)
        second = client.get("/api/saves", headers=AUTH)

        assert first.status_code == 200
        assert second.json() == first.json()
        assert first.json()[0]["file_name"] == "slot1.sav"
        service.metadata.list_for_user.assert_called_once_with("42", access_token="user-jwt")

    def test_list_saves_refetched_after_ttl(self, client, service, cache_clock):
        """Test an expired listing is fetched again."""
        client.get("/api/saves", headers=AUTH)
        cache_clock.now = 300.0
        client.get("/api/saves", headers=AUTH)

        assert service.metadata.list_for_user.call_count == 2

    def test_list_saves_failure(self, client, service):
        """Test a metadata failure is a 500 and is not cached."""
        service.metadata.list_for_user = AsyncMock(side_effect=ExternalServiceError("supabase_rest", "boom", status=500))

        response = client.get("/api/saves", headers=AUTH)

        assert response.status_code == 500
        data = response.json()
        assert data["message"] == "Failed to retrieve save files list."
        assert "stack" not in data
        assert save_list_key("42") not in service.cache

    def test_upload(self, client, service):
        """Test a multipart upload stores the file and invalidates the listing."""
        client.get("/api/saves", headers=AUTH)
        assert save_list_key("42") in service.cache

        response = client.post(
            "/api/saves/upload",
            headers=AUTH,
            files={"savefile": ("slot2.sav", b"level-3", "application/octet-stream")},
            data={"version": "2.0", "custom_metadata": '{"slot": 2}'},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["message"] == "File uploaded successfully."
        assert data["data"]["file_name"] == "slot2.sav"
        assert data["data"]["version"] == "2.0"
        assert data["data"]["custom_metadata"] == {"slot": 2}
        assert data["data"]["size_bytes"] == 7
        assert save_list_key("42") not in service.cache

        path, content, content_type = service.storage.upload.call_args.args
        assert path.startswith("42/") and path.endswith("_slot2.sav")
        assert content == b"level-3"
        assert content_type == "application/octet-stream"

    def test_upload_without_file(self, client, service):
        """Test an upload with no file part."""
        response = client.post("/api/saves/upload", headers=AUTH, data={"version": "2.0"})

        assert response.status_code == 400
        assert response.json()["message"] == "No file uploaded."
        service.storage.upload.assert_not_called()

    def test_upload_invalid_custom_metadata(self, client, service):
        """Test custom_metadata must be a JSON object."""
        response = client.post(
            "/api/saves/upload",
            headers=AUTH,
            files={"savefile": ("slot2.sav", b"x", "application/octet-stream")},
            data={"custom_metadata": "not json"},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        service.storage.upload.assert_not_called()

    def test_upload_too_large(self, client, service):
        """Test files over MAX_UPLOAD_BYTES are a 413."""
        response = client.post(
            "/api/saves/upload",
            headers=AUTH,
            files={"savefile": ("huge.sav", b"x" * 65, "application/octet-stream")},
        )

        assert response.status_code == 413
        service.storage.upload.assert_not_called()

    def test_upload_too_large_checked_before_custom_metadata(self, client, service):
        """Test an oversized file is a 413 even when custom_metadata is malformed."""
        response = client.post(
            "/api/saves/upload",
            headers=AUTH,
            files={"savefile": ("huge.sav", b"x" * 65, "application/octet-stream")},
            data={"custom_metadata": "not json"},
        )

        assert response.status_code == 413
        assert response.json()["code"] == "PAYLOAD_TOO_LARGE"
        service.storage.upload.assert_not_called()

    def test_upload_storage_failure(self, client, service):
        """Test a storage failure is reported with the original message."""
        service.storage.upload = AsyncMock(side_effect=ExternalServiceError("supabase_storage", "bucket not found", status=400))

        response = client.post(
            "/api/saves/upload",
            headers=AUTH,
            files={"savefile": ("slot2.sav", b"x", "application/octet-stream")},
        )

        assert response.status_code == 500
        data = response.json()
        assert data["message"] == "Failed to upload file to storage."
        assert "bucket not found" in data["details"]["error"]

    def test_download(self, client):
        """Test download returns the bytes as an attachment."""
        response = client.get("/api/saves/download/slot1.sav", headers=AUTH)

        assert response.status_code == 200
        assert response.content == b"\x00save-data"
        assert response.headers["content-type"] == "application/octet-stream"
        assert response.headers["content-disposition"] == 'attachment; filename="slot1.sav"'

    def test_download_not_found(self, client, service):
        """Test downloading an unknown file is a 404."""
        service.metadata.find_by_file_name = AsyncMock(return_value=None)

        response = client.get("/api/saves/download/nope.sav", headers=AUTH)

        assert response.status_code == 404
        assert response.json()["message"] == "Save file not found or access denied."

    def test_delete(self, client, service):
        """Test delete removes the file and invalidates the listing."""
        client.get("/api/saves", headers=AUTH)

        response = client.delete("/api/saves/slot1.sav", headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {"message": "Save file 'slot1.sav' deleted successfully."}
        service.storage.remove.assert_called_once_with(["42/1700000000000_slot1.sav"], access_token="user-jwt")
        service.metadata.delete.assert_called_once_with(1, access_token="user-jwt")
        assert save_list_key("42") not in service.cache

    def test_delete_not_found(self, client, service):
        """Test deleting an unknown file is a 404."""
        service.metadata.find_by_file_name = AsyncMock(return_value=None)

        response = client.delete("/api/saves/nope.sav", headers=AUTH)

        assert response.status_code == 404
        assert response.json()["message"] == "Save file not found or access denied for deletion."

    def test_development_errors_include_stack(self, config, cache_clock):
        """Test stack traces are only exposed in development."""
        config.env = "development"
        service = SavesService(config, cache_clock=cache_clock)
        service.auth_client.get_user = AsyncMock(return_value={"id": "42"})
        service.metadata.find_by_file_name = AsyncMock(return_value=None)

        response = TestClient(service.app).get("/api/saves/download/nope.sav", headers=AUTH)

        assert response.status_code == 404
        assert "NotFoundError" in response.json()["stack"]

    def test_each_service_has_its_own_cache(self, config):
        """Test cache lifetime is tied to the service instance."""
        first = SavesService(config)
        second = SavesService(config)

        first.cache.set(save_list_key("42"), [])

        assert save_list_key("42") not in second.cache


def test_content_disposition_non_ascii():
    """Test non-ASCII names use the RFC 5987 form."""
    assert content_disposition("sauvegarde-é.sav") == "attachment; filename*=UTF-8''sauvegarde-%C3%A9.sav"
