"""
Persistence of remainder lists.

Ids whose deletion failed twice are saved per probe prefix so that a later
sweep, possibly in another process, can retry them.

Keys:
    remainder:{prefix}:{kind}  -> set of resource ids
"""

import logging
from typing import Dict, Iterable, List, Optional, Protocol

import redis.asyncio as redis

from ...config.provider import StorageConfig

logger = logging.getLogger("cloudprobe.storage")


class RemainderStore(Protocol):
    """Protocol for remainder persistence."""

    async def save(self, prefix: str, remainders: Dict[str, List[str]]) -> None:
        ...

    async def load(self, prefix: str) -> Dict[str, List[str]]:
        ...

    async def discard(self, prefix: str, kind: str, ids: Iterable[str]) -> None:
        ...


class MemoryRemainderStore:
    """Process local store used when no Redis is configured."""

    def __init__(self):
        self._data: Dict[str, Dict[str, set]] = {}

    async def save(self, prefix: str, remainders: Dict[str, List[str]]) -> None:
        kinds = self._data.setdefault(prefix, {})
        for kind, ids in remainders.items():
            if ids:
                kinds.setdefault(kind, set()).update(ids)

    async def load(self, prefix: str) -> Dict[str, List[str]]:
        kinds = self._data.get(prefix, {})
        return {kind: sorted(ids) for kind, ids in kinds.items() if ids}

    async def discard(self, prefix: str, kind: str, ids: Iterable[str]) -> None:
        self._data.get(prefix, {}).get(kind, set()).difference_update(ids)


class RedisRemainderStore:
    """Redis backed store; failures are logged and never raised."""

    def __init__(self, redis_client, ttl: int = 7 * 24 * 3600):
        """
        Initialize store.

        Args:
            redis_client: Async Redis client (decode_responses=True)
            ttl: Seconds a remainder set is kept after its last update
        """
        self.redis = redis_client
        self.ttl = ttl

    @staticmethod
    def _key(prefix: str, kind: str) -> str:
        return f"remainder:{prefix}:{kind}"

    async def save(self, prefix: str, remainders: Dict[str, List[str]]) -> None:
        for kind, ids in remainders.items():
            if not ids:
                continue
            key = self._key(prefix, kind)
            try:
                await self.redis.sadd(key, *ids)
                await self.redis.expire(key, self.ttl)
            except Exception as e:
                logger.error(f"Failed to store remainders {key}: {e}")

    async def load(self, prefix: str) -> Dict[str, List[str]]:
        base = self._key(prefix, "")
        result: Dict[str, List[str]] = {}
        try:
            keys = await self.redis.keys(f"{base}*")
            for key in keys:
                members = await self.redis.smembers(key)
                if members:
                    result[key[len(base):]] = sorted(members)
        except Exception as e:
            logger.error(f"Failed to load remainders for {prefix}: {e}")
        return result

    async def discard(self, prefix: str, kind: str, ids: Iterable[str]) -> None:
        ids = list(ids)
        if not ids:
            return
        key = self._key(prefix, kind)
        try:
            await self.redis.srem(key, *ids)
        except Exception as e:
            logger.error(f"Failed to discard remainders from {key}: {e}")


class StorageModule:
    """Owns the Redis connection."""

    def __init__(self, connection_url: Optional[str] = None):
        self.url = connection_url or "redis://localhost:6379/0"
        self._client = None

    async def connect(self) -> redis.Redis:
        """Get storage connection."""
        if not self._client:
            self._client = redis.from_url(self.url, decode_responses=True)
        return self._client

    async def disconnect(self):
        """Close storage connection."""
        if self._client:
            await self._client.aclose()
            self._client = None


async def open_remainder_store(config: StorageConfig, storage: Optional[StorageModule] = None):
    """Redis store when a URL is configured, in-memory store otherwise."""
    if not config.is_configured:
        return MemoryRemainderStore()
    storage = storage or StorageModule(config.redis_url)
    client = await storage.connect()
    return RedisRemainderStore(client, config.key_ttl)
