"""Summaries and report rows over committed data."""

from hms_finance.reports.summary import (
    format_amount,
    recent_activity,
    report_rows,
    summarize,
    summarize_events,
)

__all__ = [
    "format_amount",
    "recent_activity",
    "report_rows",
    "summarize",
    "summarize_events",
]
