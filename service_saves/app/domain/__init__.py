"""
Domain package for the Save Files Service.

- save_files: upload, list, download and delete workflows, including the
  cached read-through of a user's listing.
- auth: bearer token authentication as a FastAPI dependency.
"""

from .auth import AuthMiddleware
from .save_files import DownloadedFile, SaveFileManager, parse_custom_metadata

__all__ = ["AuthMiddleware", "DownloadedFile", "SaveFileManager", "parse_custom_metadata"]
