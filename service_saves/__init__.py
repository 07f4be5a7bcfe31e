"""
Save Files Service package for the Cloud Save Backend.

Authenticated users upload, list, download and delete their own save files.
Identity, object storage and metadata rows live in Supabase; this service
is the orchestration layer in front of it.

Structure:
- app.main: FastAPI app, routes, and service wiring.
- app.adapters: HTTP clients for the Supabase auth, storage and REST APIs.
- app.caching: In-process TTL cache for per-user save listings.
- app.domain: Save-file workflows and request authentication.
"""
