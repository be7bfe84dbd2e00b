"""
Authorization policy for order status changes and order visibility.
Graph legality is checked first (order_state.validate); role rules are evaluated from one table.
"""
from collections.abc import Callable

from orderflow.errors import ForbiddenError
from orderflow.models import Actor, Order, OrderFilter, Role
from orderflow.order_state import OrderStatus, validate

CUSTOMER_CANCELLABLE = frozenset({OrderStatus.PENDING, OrderStatus.ACCEPTED})
DELIVERY_STATUSES = frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED})


def _customer_rule(actor: Actor, order: Order, requested: OrderStatus, owner_id: str | None) -> None:
    if order.customer_id != actor.id:
        raise ForbiddenError("You can only change your own orders")
    if requested is not OrderStatus.CANCELLED:
        raise ForbiddenError("Customers can only cancel orders")
    if order.status not in CUSTOMER_CANCELLABLE:
        raise ForbiddenError("Order can no longer be cancelled by the customer")


def _restaurant_owner_rule(actor: Actor, order: Order, requested: OrderStatus, owner_id: str | None) -> None:
    if owner_id != actor.id:
        raise ForbiddenError("You cannot manage this order")
    if requested in DELIVERY_STATUSES:
        raise ForbiddenError("Restaurant cannot set delivery statuses")


def _rider_rule(actor: Actor, order: Order, requested: OrderStatus, owner_id: str | None) -> None:
    if order.rider_id != actor.id:
        raise ForbiddenError("You are not assigned to this order")
    if requested not in DELIVERY_STATUSES:
        raise ForbiddenError("Rider can only set delivery-related statuses")


def _admin_rule(actor: Actor, order: Order, requested: OrderStatus, owner_id: str | None) -> None:
    return None


TransitionRule = Callable[[Actor, Order, OrderStatus, str | None], None]

TRANSITION_RULES: dict[Role, TransitionRule] = {
    Role.CUSTOMER: _customer_rule,
    Role.RESTAURANT_OWNER: _restaurant_owner_rule,
    Role.RIDER: _rider_rule,
    Role.ADMIN: _admin_rule,
}


def authorize_transition(
    actor: Actor,
    order: Order,
    requested: OrderStatus,
    restaurant_owner_id: str | None,
) -> None:
    """
    Permit or deny `requested` for this actor on this order.
    Raises InvalidTransitionError for graph violations, ForbiddenError for policy violations.
    """
    validate(order.status, requested)
    TRANSITION_RULES[actor.role](actor, order, requested, restaurant_owner_id)


def can_view(actor: Actor, order: Order, restaurant_owner_id: str | None) -> bool:
    if actor.role is Role.ADMIN:
        return True
    if actor.role is Role.CUSTOMER:
        return order.customer_id == actor.id
    if actor.role is Role.RESTAURANT_OWNER:
        return restaurant_owner_id == actor.id
    if actor.role is Role.RIDER:
        return order.rider_id is not None and order.rider_id == actor.id
    return False


def order_filter_for(
    actor: Actor,
    owned_restaurant_ids: list[str],
    status: OrderStatus | None = None,
    restaurant_id: str | None = None,
) -> OrderFilter | None:
    """
    Build the listing filter for this actor. Returns None when the actor can see nothing
    (a restaurant owner without restaurants).
    """
    if actor.role is Role.CUSTOMER:
        return OrderFilter(customer_id=actor.id, status=status)

    if actor.role is Role.RESTAURANT_OWNER:
        if not owned_restaurant_ids:
            return None
        if restaurant_id is not None:
            if restaurant_id not in owned_restaurant_ids:
                raise ForbiddenError("You can only view orders from your restaurants")
            return OrderFilter(restaurant_ids=[restaurant_id], status=status)
        return OrderFilter(restaurant_ids=list(owned_restaurant_ids), status=status)

    if actor.role is Role.RIDER:
        if status is OrderStatus.READY_FOR_PICKUP:
            # pickup board: ready orders nobody else has claimed
            return OrderFilter(rider_id=actor.id, include_unassigned=True, status=status)
        return OrderFilter(rider_id=actor.id, status=status)

    if actor.role is Role.ADMIN:
        return OrderFilter(
            restaurant_ids=[restaurant_id] if restaurant_id is not None else None,
            status=status,
        )

    raise ForbiddenError("Not allowed to list orders")
