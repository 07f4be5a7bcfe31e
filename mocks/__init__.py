"""In-memory stand-ins for external platforms, for local runs and tests."""
