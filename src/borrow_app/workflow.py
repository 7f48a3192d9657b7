"""
Status machine of a borrow request.

    pending  -> approved | rejected | cancelled
    approved -> active | cancelled | rejected (revoke)
    active   -> completed

completed, rejected and cancelled are final.
"""

from src.errors import InvalidTransitionError

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
ACTIVE = "active"
COMPLETED = "completed"
CANCELLED = "cancelled"

STATUSES = (PENDING, APPROVED, REJECTED, ACTIVE, COMPLETED, CANCELLED)
TERMINAL_STATUSES = (COMPLETED, REJECTED, CANCELLED)

# (current status, action) -> new status
TRANSITIONS = {
    (PENDING, "approve"): APPROVED,
    (PENDING, "reject"): REJECTED,
    (PENDING, "cancel"): CANCELLED,
    (APPROVED, "pickup"): ACTIVE,
    (APPROVED, "cancel"): CANCELLED,
    (APPROVED, "revoke"): REJECTED,
    (ACTIVE, "return"): COMPLETED,
}

ACTIONS = tuple(sorted({action for _, action in TRANSITIONS}))


def transition(current: str, action: str) -> str:
    """New status after `action`, or InvalidTransitionError when the edge doesn't exist."""
    try:
        return TRANSITIONS[(current, action)]
    except KeyError:
        raise InvalidTransitionError(current, action) from None


def allowed_actions(current: str) -> list[str]:
    return [action for (status, action) in TRANSITIONS if status == current]


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES
