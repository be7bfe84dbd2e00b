"""
Order lifecycle state machine. Valid transitions enforce business rules.
"""
from enum import Enum

from orderflow.errors import InvalidTransitionError


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    PREPARING = "PREPARING"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


INITIAL_STATUS = OrderStatus.PENDING

# Current status -> allowed next statuses. PENDING is never a target.
VALID_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.ACCEPTED, OrderStatus.CANCELLED}),
    OrderStatus.ACCEPTED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY_FOR_PICKUP, OrderStatus.CANCELLED}),
    OrderStatus.READY_FOR_PICKUP: frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),  # terminal
    OrderStatus.CANCELLED: frozenset(),  # terminal
}


def is_terminal(status: OrderStatus) -> bool:
    return not VALID_TRANSITIONS[status]


def is_valid_transition(current: OrderStatus, requested: OrderStatus) -> bool:
    """True if requested is allowed after current."""
    return requested in VALID_TRANSITIONS[current]


def validate(current: OrderStatus, requested: OrderStatus) -> None:
    """Raise InvalidTransitionError unless current -> requested is an edge of the graph."""
    if not is_valid_transition(current, requested):
        raise InvalidTransitionError(current, requested)
