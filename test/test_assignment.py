from decimal import Decimal

import pytest

from orderflow.assignment import check_assignment
from orderflow.errors import ForbiddenError, InvalidAssignmentStateError, InvalidRiderError
from orderflow.models import Actor, LineItem, Order, Role, UserRecord
from orderflow.order_state import OrderStatus

RIDER_1 = UserRecord(id="rider-1", name="Rita", role=Role.RIDER)
RIDER_2 = UserRecord(id="rider-2", name="Raj", role=Role.RIDER)
OFF_DUTY = UserRecord(id="rider-off", name="Rex", role=Role.RIDER, is_active=False)
NOT_A_RIDER = UserRecord(id="cust-2", name="Bob", role=Role.CUSTOMER)

ADMIN = Actor(id="admin-1", role=Role.ADMIN)
OWNER = Actor(id="owner-1", role=Role.RESTAURANT_OWNER)
OTHER_OWNER = Actor(id="owner-2", role=Role.RESTAURANT_OWNER)
RIDER = Actor(id="rider-1", role=Role.RIDER)
CUSTOMER = Actor(id="cust-1", role=Role.CUSTOMER)


def make_order(status: OrderStatus, rider_id: str | None = None) -> Order:
    return Order(
        customer_id="cust-1",
        restaurant_id="rest-1",
        rider_id=rider_id,
        items=[LineItem(menu_item_id="item-pasta", name="Pasta", unit_price=Decimal("10.00"), quantity=1)],
        total_amount=Decimal("10.00"),
        status=status,
    )


@pytest.mark.parametrize(
    "status",
    [OrderStatus.ACCEPTED, OrderStatus.PREPARING, OrderStatus.READY_FOR_PICKUP],
)
def test_admin_and_owner_assign_in_any_assignable_state(status):
    check_assignment(ADMIN, make_order(status), "rider-1", RIDER_1, "owner-1")
    check_assignment(OWNER, make_order(status, "rider-2"), "rider-1", RIDER_1, "owner-1")


@pytest.mark.parametrize(
    "status",
    [OrderStatus.PENDING, OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED, OrderStatus.CANCELLED],
)
def test_unassignable_states(status):
    with pytest.raises(InvalidAssignmentStateError):
        check_assignment(ADMIN, make_order(status), "rider-1", RIDER_1, "owner-1")


def test_owner_must_own_the_restaurant():
    with pytest.raises(ForbiddenError):
        check_assignment(OTHER_OWNER, make_order(OrderStatus.ACCEPTED), "rider-1", RIDER_1, "owner-1")


def test_customers_cannot_assign():
    with pytest.raises(ForbiddenError):
        check_assignment(CUSTOMER, make_order(OrderStatus.ACCEPTED), "rider-1", RIDER_1, "owner-1")


def test_rider_self_assigns_when_ready_and_unclaimed():
    check_assignment(RIDER, make_order(OrderStatus.READY_FOR_PICKUP), "rider-1", RIDER_1, "owner-1")
    check_assignment(RIDER, make_order(OrderStatus.READY_FOR_PICKUP, "rider-1"), "rider-1", RIDER_1, "owner-1")


@pytest.mark.parametrize("status", [OrderStatus.PENDING, OrderStatus.ACCEPTED, OrderStatus.PREPARING])
def test_rider_self_assign_before_ready_is_a_state_error(status):
    with pytest.raises(InvalidAssignmentStateError):
        check_assignment(RIDER, make_order(status), "rider-1", RIDER_1, "owner-1")


def test_rider_cannot_poach_or_assign_others():
    with pytest.raises(ForbiddenError):
        check_assignment(RIDER, make_order(OrderStatus.READY_FOR_PICKUP, "rider-2"), "rider-1", RIDER_1, "owner-1")
    with pytest.raises(ForbiddenError):
        check_assignment(RIDER, make_order(OrderStatus.READY_FOR_PICKUP), "rider-2", RIDER_2, "owner-1")


@pytest.mark.parametrize("rider_id,rider", [("ghost", None), ("rider-off", OFF_DUTY), ("cust-2", NOT_A_RIDER)])
def test_invalid_riders(rider_id, rider):
    with pytest.raises(InvalidRiderError):
        check_assignment(ADMIN, make_order(OrderStatus.ACCEPTED), rider_id, rider, "owner-1")
