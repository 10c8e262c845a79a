"""
Access Policy

The identity provider hands us an already-authenticated Actor; this
module decides what that actor may do.

    ADMIN      mutate the committed store directly, resolve any request
    ASSISTANT  submit requests, edit or cancel its own pending requests
    USER       read merged views only
"""

from hms_finance.models.actor import Actor, Role
from hms_finance.models.requests import PendingRequest


class PermissionDeniedError(Exception):
    """The actor's role does not allow the requested operation."""

    def __init__(self, actor: Actor, operation: str):
        self.actor = actor
        self.operation = operation
        super().__init__(
            f"{actor.username} ({actor.role.value}) is not allowed to {operation}"
        )


def require_role(actor: Actor, operation: str, *roles: Role) -> None:
    if actor.role not in roles:
        raise PermissionDeniedError(actor, operation)


def ensure_can_mutate_directly(actor: Actor, operation: str = "change committed data") -> None:
    require_role(actor, operation, Role.ADMIN)


def ensure_can_resolve(actor: Actor, operation: str = "approve or reject requests") -> None:
    require_role(actor, operation, Role.ADMIN)


def ensure_can_submit(actor: Actor) -> None:
    require_role(actor, "submit change requests", Role.ADMIN, Role.ASSISTANT)


def ensure_owns_request(actor: Actor, request: PendingRequest, operation: str) -> None:
    """Only the original requester may edit; cancelling is also open to admins."""
    if request.requested_by == actor.username and actor.role != Role.USER:
        return
    raise PermissionDeniedError(actor, operation)


def ensure_can_cancel(actor: Actor, request: PendingRequest) -> None:
    if actor.is_admin:
        return
    ensure_owns_request(actor, request, "cancel this request")
