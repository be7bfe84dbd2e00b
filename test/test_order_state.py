import itertools

import pytest

from orderflow.errors import InvalidTransitionError
from orderflow.order_state import (
    VALID_TRANSITIONS,
    OrderStatus,
    is_terminal,
    is_valid_transition,
    validate,
)

EDGES = {
    (OrderStatus.PENDING, OrderStatus.ACCEPTED),
    (OrderStatus.PENDING, OrderStatus.CANCELLED),
    (OrderStatus.ACCEPTED, OrderStatus.PREPARING),
    (OrderStatus.ACCEPTED, OrderStatus.CANCELLED),
    (OrderStatus.PREPARING, OrderStatus.READY_FOR_PICKUP),
    (OrderStatus.PREPARING, OrderStatus.CANCELLED),
    (OrderStatus.READY_FOR_PICKUP, OrderStatus.OUT_FOR_DELIVERY),
    (OrderStatus.READY_FOR_PICKUP, OrderStatus.CANCELLED),
    (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED),
    (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED),
}


def test_every_status_has_an_entry():
    assert set(VALID_TRANSITIONS) == set(OrderStatus)


def test_only_listed_edges_are_permitted():
    for current, requested in itertools.product(OrderStatus, repeat=2):
        assert is_valid_transition(current, requested) == ((current, requested) in EDGES)


@pytest.mark.parametrize("current", list(OrderStatus))
def test_nothing_transitions_into_pending(current):
    with pytest.raises(InvalidTransitionError):
        validate(current, OrderStatus.PENDING)


@pytest.mark.parametrize("terminal", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
def test_terminal_states_have_no_way_out(terminal):
    assert is_terminal(terminal)
    for requested in OrderStatus:
        with pytest.raises(InvalidTransitionError):
            validate(terminal, requested)


def test_denial_carries_both_statuses():
    with pytest.raises(InvalidTransitionError) as exc_info:
        validate(OrderStatus.READY_FOR_PICKUP, OrderStatus.DELIVERED)
    assert exc_info.value.current is OrderStatus.READY_FOR_PICKUP
    assert exc_info.value.requested is OrderStatus.DELIVERED
    assert "READY_FOR_PICKUP" in exc_info.value.message


def test_permitted_edge_returns_none():
    assert validate(OrderStatus.PENDING, OrderStatus.ACCEPTED) is None
    assert not is_terminal(OrderStatus.OUT_FOR_DELIVERY)
