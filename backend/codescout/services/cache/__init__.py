from __future__ import annotations

"""
Result cache package.

- store.CacheStore: TTL memoizer for successful CLI Results
- store.generate_cache_key: stable "v1-<category>:<md5>" keys
"""

from .store import (  # noqa: F401
    CacheStats,
    CacheStore,
    category_from_key,
    generate_cache_key,
)
