"""
Adapters package for the Save Files Service.

Contains HTTP client wrappers for the Supabase platform (Auth, Storage and
the PostgREST metadata table). These adapters encapsulate:

- Base URLs, API key headers and request shapes
- Retry policies (idempotent reads only) and circuit breakers
- Error handling that maps to shared errors

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .base import SupabaseHttpClient
from .auth_client import SupabaseAuthClient
from .storage_client import SupabaseStorageClient
from .metadata_repository import SaveMetadataRepository

__all__ = [
    "SupabaseHttpClient",
    "SupabaseAuthClient",
    "SupabaseStorageClient",
    "SaveMetadataRepository",
]
