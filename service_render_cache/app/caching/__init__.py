"""
Render caching package.

Entries are never revalidated: a stored body is served until it is expired
explicitly, its store entry lapses, or a template change moves it to a new
name.
"""

from .keys import CacheKeyResolver, KeyExpression, context_attr, current_controller, resolve
from .fragments import expand_cache_key, name_for
from .paths import ActionCachePath, ActionCachePathBuilder
from .store import FragmentStore, MemoryFragmentStore, RedisFragmentStore

__all__ = [
    "ActionCachePath",
    "ActionCachePathBuilder",
    "CacheKeyResolver",
    "FragmentStore",
    "KeyExpression",
    "MemoryFragmentStore",
    "RedisFragmentStore",
    "context_attr",
    "current_controller",
    "expand_cache_key",
    "name_for",
    "resolve",
]
