"""Pending change overlay package."""

from hms_finance.overlay.merge import (
    committed_rows,
    merge_dashboard,
    merge_for_event,
    sort_for_display,
)

__all__ = [
    "committed_rows",
    "merge_dashboard",
    "merge_for_event",
    "sort_for_display",
]
