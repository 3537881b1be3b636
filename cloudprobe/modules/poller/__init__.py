"""
Poller Module - Black Box Interface

Purpose: Wait for resources to converge and time their convergence
Interface: PerItemPoller.wait_for(), BulkListPoller.wait_for(), classify()
Hidden: Round budgets, failure tolerance, progress rendering

Both pollers share one contract and are interchangeable for a caller.
"""

from .poller import (
    DELETED,
    NON_NULL,
    WAIT_THROUGH_ERRORS,
    BulkListPoller,
    ConvergencePoller,
    PerItemPoller,
    Resolution,
    classify,
    glyph,
)

__all__ = [
    "DELETED",
    "NON_NULL",
    "WAIT_THROUGH_ERRORS",
    "BulkListPoller",
    "ConvergencePoller",
    "PerItemPoller",
    "Resolution",
    "classify",
    "glyph",
]
