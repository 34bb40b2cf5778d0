import pytest

from dispatch_ledger.exceptions import ConflictError, InvalidStateError, InvalidTransitionError
from dispatch_ledger.models.domain import OrderStatus, RouteStatus, StopStatus
from dispatch_ledger.services.workflow import can_transition, validate_transition


@pytest.mark.parametrize(
    ("current", "new"),
    [
        (OrderStatus.APPROVED, OrderStatus.IN_TRANSIT),
        (OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED),
        (RouteStatus.ACTIVE, RouteStatus.COMPLETED),
        (RouteStatus.COMPLETED, RouteStatus.FINISHED),
        (StopStatus.PENDING, StopStatus.COMPLETED),
        (StopStatus.PENDING, StopStatus.FAILED),
    ],
)
def test_allowed_transitions(current, new):
    assert can_transition(current, new)
    validate_transition(current, new)


@pytest.mark.parametrize(
    ("current", "new"),
    [
        (OrderStatus.PENDING_APPROVAL, OrderStatus.IN_TRANSIT),
        (OrderStatus.DELIVERED, OrderStatus.IN_TRANSIT),
        (RouteStatus.ACTIVE, RouteStatus.FINISHED),
        (RouteStatus.FINISHED, RouteStatus.ACTIVE),
        (StopStatus.COMPLETED, StopStatus.FAILED),
        (StopStatus.FAILED, StopStatus.PENDING),
    ],
)
def test_rejected_transitions(current, new):
    assert not can_transition(current, new)
    with pytest.raises(InvalidTransitionError) as exc_info:
        validate_transition(current, new)
    assert exc_info.value.details["current_status"] == current.value
    assert exc_info.value.details["attempted_status"] == new.value


def test_invalid_transition_is_a_conflict():
    assert issubclass(InvalidTransitionError, InvalidStateError)
    assert issubclass(InvalidStateError, ConflictError)


def test_terminal_stop_statuses():
    assert not StopStatus.PENDING.is_terminal
    assert StopStatus.COMPLETED.is_terminal
    assert StopStatus.FAILED.is_terminal
