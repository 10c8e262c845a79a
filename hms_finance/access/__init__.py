"""Role-based access policy package."""

from hms_finance.access.policy import (
    PermissionDeniedError,
    ensure_can_cancel,
    ensure_can_mutate_directly,
    ensure_can_resolve,
    ensure_can_submit,
    ensure_owns_request,
    require_role,
)

__all__ = [
    "PermissionDeniedError",
    "ensure_can_cancel",
    "ensure_can_mutate_directly",
    "ensure_can_resolve",
    "ensure_can_submit",
    "ensure_owns_request",
    "require_role",
]
