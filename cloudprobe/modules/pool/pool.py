"""
Resource pools and remainder lists.

A pool owns the handles of one resource kind from creation until deletion.
Insertion order is creation order; deletion pops from the end. A ledger
shared by all pools of a deployment keeps every id in at most one live pool.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Set

logger = logging.getLogger("cloudprobe.pool")


class DuplicateResourceError(ValueError):
    """Raised when an id is added while another pool still owns it."""


@dataclass
class ResourceHandle:
    """Created resource: id and wall clock creation start time."""

    id: str
    created_at: float


class ResourceLedger:
    """Ids that are currently owned by some live pool."""

    def __init__(self):
        self._owners: Dict[str, str] = {}

    def claim(self, resource_id: str, kind: str) -> None:
        owner = self._owners.get(resource_id)
        if owner is not None:
            raise DuplicateResourceError(f"{resource_id} already owned by pool '{owner}'")
        self._owners[resource_id] = kind

    def release(self, resource_id: str) -> None:
        self._owners.pop(resource_id, None)

    def owner(self, resource_id: str) -> Optional[str]:
        return self._owners.get(resource_id)

    def __contains__(self, resource_id: str) -> bool:
        return resource_id in self._owners

    def __len__(self) -> int:
        return len(self._owners)


class ResourcePool:
    """Ordered handles of one resource kind."""

    def __init__(self, kind: str, ledger: Optional[ResourceLedger] = None):
        self.kind = kind
        self.ledger = ledger
        self._handles: List[ResourceHandle] = []

    def append(self, resource_id: str, created_at: float) -> ResourceHandle:
        if self.ledger is not None:
            self.ledger.claim(resource_id, self.kind)
        handle = ResourceHandle(resource_id, created_at)
        self._handles.append(handle)
        return handle

    def pop(self) -> ResourceHandle:
        """Remove and return the most recently added handle."""
        handle = self._handles.pop()
        if self.ledger is not None:
            self.ledger.release(handle.id)
        return handle

    def clear(self) -> None:
        while self._handles:
            self.pop()

    @property
    def ids(self) -> List[str]:
        return [h.id for h in self._handles]

    @property
    def start_times(self) -> List[float]:
        return [h.created_at for h in self._handles]

    def __len__(self) -> int:
        return len(self._handles)

    def __iter__(self) -> Iterator[ResourceHandle]:
        return iter(list(self._handles))

    def __getitem__(self, index: int) -> ResourceHandle:
        return self._handles[index]

    def __bool__(self) -> bool:
        return bool(self._handles)

    def __repr__(self) -> str:
        return f"ResourcePool({self.kind!r}, {self.ids})"


class RemainderList:
    """Ids of one kind whose deletion failed twice."""

    def __init__(self, kind: str):
        self.kind = kind
        self._ids: List[str] = []

    def add(self, resource_id: str) -> bool:
        """Add an id once. Returns False if it was already listed."""
        if resource_id in self._ids:
            return False
        self._ids.append(resource_id)
        logger.warning(f"{self.kind} {resource_id} left over after failed deletion")
        return True

    def extend(self, resource_ids: Iterable[str]) -> None:
        for resource_id in resource_ids:
            self.add(resource_id)

    def discard(self, resource_id: str) -> None:
        if resource_id in self._ids:
            self._ids.remove(resource_id)

    @property
    def ids(self) -> List[str]:
        return list(self._ids)

    def __contains__(self, resource_id: str) -> bool:
        return resource_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._ids))


class RemainderRegistry:
    """Remainder lists keyed by resource kind."""

    def __init__(self):
        self._lists: Dict[str, RemainderList] = {}

    def __getitem__(self, kind: str) -> RemainderList:
        if kind not in self._lists:
            self._lists[kind] = RemainderList(kind)
        return self._lists[kind]

    def kinds(self) -> Set[str]:
        return {kind for kind, rlist in self._lists.items() if len(rlist)}

    def snapshot(self) -> Dict[str, List[str]]:
        """Non-empty lists as plain data."""
        return {kind: rlist.ids for kind, rlist in self._lists.items() if len(rlist)}

    def total(self) -> int:
        return sum(len(rlist) for rlist in self._lists.values())

    def clear(self) -> None:
        self._lists = {}
