import pytest

from src.borrow_app.workflow import (
    ACTIONS,
    STATUSES,
    allowed_actions,
    is_terminal,
    transition,
)
from src.errors import ConflictError, InvalidTransitionError


@pytest.mark.parametrize(
    "current, action, expected",
    [
        ("pending", "approve", "approved"),
        ("pending", "reject", "rejected"),
        ("pending", "cancel", "cancelled"),
        ("approved", "pickup", "active"),
        ("approved", "cancel", "cancelled"),
        ("approved", "revoke", "rejected"),
        ("active", "return", "completed"),
    ],
)
def test_allowed_transitions(current, action, expected):
    assert transition(current, action) == expected


@pytest.mark.parametrize(
    "current, action",
    [
        ("pending", "pickup"),
        ("pending", "return"),
        ("approved", "approve"),
        ("active", "cancel"),
        ("active", "revoke"),
    ],
)
def test_invalid_transitions(current, action):
    with pytest.raises(InvalidTransitionError) as excinfo:
        transition(current, action)
    assert excinfo.value.message == f"Cannot {action} a request that is {current}"
    assert excinfo.value.status_code == 409


def test_terminal_statuses_allow_nothing():
    for status in ("completed", "rejected", "cancelled"):
        assert is_terminal(status)
        assert allowed_actions(status) == []
        for action in ACTIONS:
            with pytest.raises(ConflictError):
                transition(status, action)


def test_allowed_actions_of_open_statuses():
    assert allowed_actions("pending") == ["approve", "reject", "cancel"]
    assert allowed_actions("approved") == ["pickup", "cancel", "revoke"]
    assert allowed_actions("active") == ["return"]
    assert not any(is_terminal(status) for status in STATUSES[:2])
