from decimal import Decimal

import pytest

from orderflow.errors import ForbiddenError, InvalidTransitionError
from orderflow.models import Actor, LineItem, Order, OrderFilter, Role
from orderflow.order_state import OrderStatus
from orderflow.policy import authorize_transition, can_view, order_filter_for

CUSTOMER = Actor(id="cust-1", role=Role.CUSTOMER)
OTHER_CUSTOMER = Actor(id="cust-2", role=Role.CUSTOMER)
OWNER = Actor(id="owner-1", role=Role.RESTAURANT_OWNER)
OTHER_OWNER = Actor(id="owner-2", role=Role.RESTAURANT_OWNER)
RIDER = Actor(id="rider-1", role=Role.RIDER)
OTHER_RIDER = Actor(id="rider-2", role=Role.RIDER)
ADMIN = Actor(id="admin-1", role=Role.ADMIN)


def make_order(status: OrderStatus, rider_id: str | None = None) -> Order:
    return Order(
        id="order-1",
        customer_id="cust-1",
        restaurant_id="rest-1",
        rider_id=rider_id,
        items=[LineItem(menu_item_id="item-pasta", name="Pasta", unit_price=Decimal("10.00"), quantity=1)],
        total_amount=Decimal("10.00"),
        status=status,
    )


@pytest.mark.parametrize("status", [OrderStatus.PENDING, OrderStatus.ACCEPTED])
def test_customer_can_cancel_early(status):
    authorize_transition(CUSTOMER, make_order(status), OrderStatus.CANCELLED, "owner-1")


@pytest.mark.parametrize(
    "status",
    [OrderStatus.PREPARING, OrderStatus.READY_FOR_PICKUP, OrderStatus.OUT_FOR_DELIVERY],
)
def test_customer_cannot_cancel_once_preparing(status):
    with pytest.raises(ForbiddenError):
        authorize_transition(CUSTOMER, make_order(status), OrderStatus.CANCELLED, "owner-1")


def test_customer_cannot_accept_or_cancel_someone_elses_order():
    with pytest.raises(ForbiddenError):
        authorize_transition(CUSTOMER, make_order(OrderStatus.PENDING), OrderStatus.ACCEPTED, "owner-1")
    with pytest.raises(ForbiddenError):
        authorize_transition(OTHER_CUSTOMER, make_order(OrderStatus.PENDING), OrderStatus.CANCELLED, "owner-1")


def test_graph_violation_wins_over_policy():
    # customer may never do this, but the graph check comes first
    with pytest.raises(InvalidTransitionError):
        authorize_transition(CUSTOMER, make_order(OrderStatus.DELIVERED), OrderStatus.CANCELLED, "owner-1")


def test_owner_drives_kitchen_statuses_only():
    authorize_transition(OWNER, make_order(OrderStatus.PENDING), OrderStatus.ACCEPTED, "owner-1")
    authorize_transition(OWNER, make_order(OrderStatus.ACCEPTED), OrderStatus.PREPARING, "owner-1")
    authorize_transition(OWNER, make_order(OrderStatus.PREPARING), OrderStatus.READY_FOR_PICKUP, "owner-1")
    authorize_transition(OWNER, make_order(OrderStatus.READY_FOR_PICKUP), OrderStatus.CANCELLED, "owner-1")
    with pytest.raises(ForbiddenError):
        authorize_transition(OWNER, make_order(OrderStatus.READY_FOR_PICKUP), OrderStatus.OUT_FOR_DELIVERY, "owner-1")
    with pytest.raises(ForbiddenError):
        authorize_transition(OWNER, make_order(OrderStatus.OUT_FOR_DELIVERY), OrderStatus.DELIVERED, "owner-1")


def test_owner_of_another_restaurant_is_forbidden():
    with pytest.raises(ForbiddenError):
        authorize_transition(OTHER_OWNER, make_order(OrderStatus.PENDING), OrderStatus.ACCEPTED, "owner-1")


def test_assigned_rider_drives_delivery_statuses_only():
    authorize_transition(
        RIDER, make_order(OrderStatus.READY_FOR_PICKUP, "rider-1"), OrderStatus.OUT_FOR_DELIVERY, "owner-1"
    )
    authorize_transition(RIDER, make_order(OrderStatus.OUT_FOR_DELIVERY, "rider-1"), OrderStatus.DELIVERED, "owner-1")
    with pytest.raises(ForbiddenError):
        authorize_transition(RIDER, make_order(OrderStatus.OUT_FOR_DELIVERY, "rider-1"), OrderStatus.CANCELLED, "owner-1")
    with pytest.raises(ForbiddenError):
        authorize_transition(
            OTHER_RIDER, make_order(OrderStatus.READY_FOR_PICKUP, "rider-1"), OrderStatus.OUT_FOR_DELIVERY, "owner-1"
        )


def test_unassigned_rider_is_forbidden():
    with pytest.raises(ForbiddenError):
        authorize_transition(RIDER, make_order(OrderStatus.READY_FOR_PICKUP), OrderStatus.OUT_FOR_DELIVERY, "owner-1")


def test_admin_bypasses_role_rules_but_not_the_graph():
    authorize_transition(ADMIN, make_order(OrderStatus.OUT_FOR_DELIVERY), OrderStatus.DELIVERED, None)
    authorize_transition(ADMIN, make_order(OrderStatus.PREPARING), OrderStatus.CANCELLED, None)
    with pytest.raises(InvalidTransitionError):
        authorize_transition(ADMIN, make_order(OrderStatus.PENDING), OrderStatus.DELIVERED, None)


def test_visibility():
    order = make_order(OrderStatus.READY_FOR_PICKUP, "rider-1")
    assert can_view(CUSTOMER, order, "owner-1")
    assert not can_view(OTHER_CUSTOMER, order, "owner-1")
    assert can_view(OWNER, order, "owner-1")
    assert not can_view(OTHER_OWNER, order, "owner-1")
    assert can_view(RIDER, order, "owner-1")
    assert not can_view(OTHER_RIDER, order, "owner-1")
    assert can_view(ADMIN, order, "owner-1")
    assert not can_view(RIDER, make_order(OrderStatus.READY_FOR_PICKUP), "owner-1")


def test_listing_filters():
    assert order_filter_for(CUSTOMER, []).customer_id == "cust-1"

    assert order_filter_for(OWNER, []) is None
    assert order_filter_for(OWNER, ["rest-1", "rest-9"]).restaurant_ids == ["rest-1", "rest-9"]
    assert order_filter_for(OWNER, ["rest-1"], restaurant_id="rest-1").restaurant_ids == ["rest-1"]
    with pytest.raises(ForbiddenError):
        order_filter_for(OWNER, ["rest-1"], restaurant_id="rest-2")

    board = order_filter_for(RIDER, [], status=OrderStatus.READY_FOR_PICKUP)
    assert board.rider_id == "rider-1" and board.include_unassigned
    assigned = order_filter_for(RIDER, [], status=OrderStatus.DELIVERED)
    assert assigned.rider_id == "rider-1" and not assigned.include_unassigned
    assert assigned.status is OrderStatus.DELIVERED

    everything = order_filter_for(ADMIN, [], restaurant_id="rest-2")
    assert everything.restaurant_ids == ["rest-2"] and everything.customer_id is None
    assert order_filter_for(ADMIN, []).restaurant_ids is None


def test_order_filter_validates_its_fields():
    order_filter = OrderFilter(status="READY_FOR_PICKUP", exclude_statuses=["CANCELLED"])
    assert order_filter.status is OrderStatus.READY_FOR_PICKUP
    assert order_filter.exclude_statuses == [OrderStatus.CANCELLED]
    assert order_filter_for(RIDER, [], status=OrderStatus.PREPARING) == OrderFilter(
        rider_id="rider-1", status=OrderStatus.PREPARING
    )
