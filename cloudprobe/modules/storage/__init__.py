"""
Storage Module - Black Box Interface

Purpose: Persist leftovers of failed deletions across runs
Interface: RemainderStore.save(), load(), discard(); open_remainder_store()
Hidden: Redis specifics, key layout, connection handling

Can be replaced with any storage backend without affecting other modules.
"""

from .remainders import (
    MemoryRemainderStore,
    RedisRemainderStore,
    RemainderStore,
    StorageModule,
    open_remainder_store,
)

__all__ = [
    "MemoryRemainderStore",
    "RedisRemainderStore",
    "RemainderStore",
    "StorageModule",
    "open_remainder_store",
]
