"""
Save listing cache package.

A single-process TTL cache in front of the per-user metadata query. The
metadata table stays the source of truth; entries are dropped on expiry
and on every upload or delete by the owning user.
"""

from .ttl_cache import TTLCache, save_list_key

__all__ = ["TTLCache", "save_list_key"]
