"""
Fragment store adapters.

The caching pipeline only needs ``read``/``write``/``delete`` by name with an
opaque options bag. Options are forwarded verbatim from controller
configuration; the adapters here understand ``expires_in`` (seconds).
"""

import time
from typing import Any, Dict, Optional, Tuple

import redis.asyncio as redis

from shared.errors import ConfigurationError


class FragmentStore:
    """Interface of the external fragment store."""

    async def read(self, name: str, options: Optional[Dict[str, Any]] = None) -> Optional[str]:
        raise NotImplementedError

    async def write(self, name: str, value: str, options: Optional[Dict[str, Any]] = None) -> str:
        raise NotImplementedError

    async def delete(self, name: str, options: Optional[Dict[str, Any]] = None) -> None:
        raise NotImplementedError

    async def ping(self) -> bool:
        return True


def _expires_in(options: Optional[Dict[str, Any]]) -> Optional[int]:
    if not options or options.get("expires_in") is None:
        return None
    return int(options["expires_in"])


class MemoryFragmentStore(FragmentStore):
    """In-process store, used for local runs and tests."""

    def __init__(self, namespace: Optional[str] = None):
        self.namespace = namespace
        self._entries: Dict[str, Tuple[str, Optional[float]]] = {}

    def _key(self, name: str) -> str:
        return f"{self.namespace}:{name}" if self.namespace else name

    async def read(self, name: str, options: Optional[Dict[str, Any]] = None) -> Optional[str]:
        key = self._key(name)
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self._entries[key]
            return None
        return value

    async def write(self, name: str, value: str, options: Optional[Dict[str, Any]] = None) -> str:
        ttl = _expires_in(options)
        expires_at = time.monotonic() + ttl if ttl is not None else None
        self._entries[self._key(name)] = (value, expires_at)
        return value

    async def delete(self, name: str, options: Optional[Dict[str, Any]] = None) -> None:
        self._entries.pop(self._key(name), None)

    def __contains__(self, name: str) -> bool:
        return self._key(name) in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class RedisFragmentStore(FragmentStore):
    """Redis-backed store; ``expires_in`` maps to the key's EX."""

    def __init__(self, redis_url: str, namespace: Optional[str] = None):
        self.redis_url = redis_url
        self.namespace = namespace
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url)
        return self._redis

    def _key(self, name: str) -> str:
        return f"{self.namespace}:{name}" if self.namespace else name

    async def read(self, name: str, options: Optional[Dict[str, Any]] = None) -> Optional[str]:
        redis_client = await self._get_redis()
        cached = await redis_client.get(self._key(name))
        if cached is None:
            return None
        return cached.decode("utf-8") if isinstance(cached, bytes) else cached

    async def write(self, name: str, value: str, options: Optional[Dict[str, Any]] = None) -> str:
        redis_client = await self._get_redis()
        await redis_client.set(self._key(name), value, ex=_expires_in(options))
        return value

    async def delete(self, name: str, options: Optional[Dict[str, Any]] = None) -> None:
        redis_client = await self._get_redis()
        await redis_client.delete(self._key(name))

    async def ping(self) -> bool:
        redis_client = await self._get_redis()
        return bool(await redis_client.ping())

    async def close(self):
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


def build_fragment_store(config: Any) -> FragmentStore:
    """Create the store selected by ``config.store_backend``."""
    backend = config.store_backend.lower()
    if backend == "redis":
        return RedisFragmentStore(config.redis_url, namespace=config.store_namespace)
    if backend == "memory":
        return MemoryFragmentStore(namespace=config.store_namespace)
    raise ConfigurationError(f"Unknown fragment store backend: {config.store_backend}")
