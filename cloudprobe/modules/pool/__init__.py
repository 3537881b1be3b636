"""
Pool Module - Black Box Interface

Purpose: Own created resource handles until they are deleted
Interface: ResourcePool.append()/pop(), RemainderRegistry[kind].add()
Hidden: Ownership ledger, ordering

Pools carry no knowledge of what kind of resource they hold.
"""

from .pool import (
    DuplicateResourceError,
    RemainderList,
    RemainderRegistry,
    ResourceHandle,
    ResourceLedger,
    ResourcePool,
)

__all__ = [
    "DuplicateResourceError",
    "RemainderList",
    "RemainderRegistry",
    "ResourceHandle",
    "ResourceLedger",
    "ResourcePool",
]
