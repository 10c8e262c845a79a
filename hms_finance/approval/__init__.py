"""Approval workflow package."""

from hms_finance.approval.coordinator import (
    ApprovalCoordinator,
    ApprovalOutcome,
    ApprovalResult,
    describe_payload,
)

__all__ = [
    "ApprovalCoordinator",
    "ApprovalOutcome",
    "ApprovalResult",
    "describe_payload",
]
