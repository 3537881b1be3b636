"""
Batch Module - Black Box Interface

Purpose: Create and delete resources in sequential batches
Interface: BatchCreator.create(), BatchDeleter.delete(), ActionTemplate
Hidden: Placeholder resolution, retry timing, remainder bookkeeping

One action is in flight at a time to bound the load on the control plane.
"""

from .creator import BatchCreator, BatchResult
from .deleter import BatchDeleter
from .template import ActionTemplate, item_context

__all__ = [
    "ActionTemplate",
    "BatchCreator",
    "BatchDeleter",
    "BatchResult",
    "item_context",
]
