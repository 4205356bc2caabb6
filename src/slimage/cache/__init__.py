"""Content-addressed executable cache."""

from .keys import BuildCacheInput, cache_key
from .store import BuildCacheStore

__all__ = ["BuildCacheInput", "BuildCacheStore", "cache_key"]
