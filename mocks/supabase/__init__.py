from .server import MockSupabaseServer, create_app

__all__ = ["MockSupabaseServer", "create_app"]
