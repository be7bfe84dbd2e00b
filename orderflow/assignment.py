"""
Rider assignment rules: who may bind a rider to an order, and in which order states.
"""
from orderflow.errors import ForbiddenError, InvalidAssignmentStateError, InvalidRiderError
from orderflow.models import Actor, Order, Role, UserRecord
from orderflow.order_state import OrderStatus

ASSIGNABLE_STATUSES = frozenset({
    OrderStatus.ACCEPTED,
    OrderStatus.PREPARING,
    OrderStatus.READY_FOR_PICKUP,
})


def check_assignment(
    actor: Actor,
    order: Order,
    rider_id: str,
    rider: UserRecord | None,
    restaurant_owner_id: str | None,
) -> None:
    """
    Raise unless `actor` may assign `rider_id` to `order` right now.
    Checks run in order: role gate, order state, rider claim on another rider's job, rider validity.
    """
    if actor.role is Role.RESTAURANT_OWNER:
        if restaurant_owner_id != actor.id:
            raise ForbiddenError("You cannot manage this order")
    elif actor.role is Role.RIDER:
        if rider_id != actor.id:
            raise ForbiddenError("Riders can only assign themselves to orders")
    elif actor.role is not Role.ADMIN:
        raise ForbiddenError("Only admin, restaurant owner, or rider can assign riders")

    if order.status not in ASSIGNABLE_STATUSES:
        raise InvalidAssignmentStateError(
            f"Rider can only be assigned to accepted/preparing/ready orders (order is {order.status.value})"
        )

    if actor.role is Role.RIDER:
        if order.status is not OrderStatus.READY_FOR_PICKUP:
            raise InvalidAssignmentStateError("Riders can only assign themselves to orders ready for pickup")
        if order.rider_id is not None and order.rider_id != actor.id:
            raise ForbiddenError("This order is already assigned to another rider")

    if rider is None or rider.role is not Role.RIDER or not rider.is_active:
        raise InvalidRiderError("Invalid rider")
