"""
Order workflow: creation, status changes and rider assignment.

Each mutation loads the order, runs the policy, and commits with a compare-and-swap on the order
version (status + history row in one transaction). A lost race reloads the order and re-runs the
policy against the new state; after `order_mutation_max_retries` lost races ConflictError is raised.
Notification intents are computed after the commit and handed to the dispatcher; dispatch failures
never undo a commit.
"""
import logging
from decimal import Decimal

from orderflow.assignment import check_assignment
from orderflow.collaborators import OrderStore, RestaurantCatalog, UserDirectory
from orderflow.config import settings
from orderflow.errors import (
    ConflictError,
    ForbiddenError,
    InvalidLineItemsError,
    InvalidRiderStatusError,
    NotFoundError,
    OrderWorkflowError,
    RestaurantUnavailableError,
)
from orderflow.metrics import (
    order_mutation_conflicts_total,
    order_transitions_rejected_total,
    order_transitions_total,
    orders_created_total,
    rider_assignments_total,
)
from orderflow.models import (
    Actor,
    LineItem,
    Order,
    OrderFilter,
    RestaurantRecord,
    Role,
    StatusHistoryEntry,
    WorkflowOutcome,
    to_money,
)
from orderflow.notifications import (
    NotificationDispatcher,
    plan_order_created,
    plan_rider_assignment,
    plan_status_change,
)
from orderflow.order_state import INITIAL_STATUS, OrderStatus
from orderflow.policy import authorize_transition, can_view, order_filter_for

logger = logging.getLogger(__name__)

# rider-facing names for the delivery statuses a rider may set
RIDER_STATUSES = {
    "PICKED_UP": OrderStatus.OUT_FOR_DELIVERY,
    "DELIVERED": OrderStatus.DELIVERED,
}


class OrderWorkflow:
    def __init__(
        self,
        orders: OrderStore,
        users: UserDirectory,
        catalog: RestaurantCatalog,
        dispatcher: NotificationDispatcher,
        max_retries: int | None = None,
    ):
        self._orders = orders
        self._users = users
        self._catalog = catalog
        self._dispatcher = dispatcher
        self._max_retries = settings.order_mutation_max_retries if max_retries is None else max_retries

    async def _load(self, order_id: str) -> Order:
        order = await self._orders.get_order(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        return order

    async def _restaurant_for(self, order: Order) -> RestaurantRecord:
        restaurant = await self._catalog.find_by_id(order.restaurant_id)
        if restaurant is None:
            # catalog row gone; owner rules then deny and owner notifications are skipped
            return RestaurantRecord(id=order.restaurant_id, owner_id="", is_active=False)
        return restaurant

    async def _user_name(self, user_id: str | None) -> str | None:
        # only called after a commit; a failed lookup degrades the message, never the result
        if not user_id:
            return None
        try:
            user = await self._users.find_by_id(user_id)
        except Exception:
            logger.exception("User lookup failed for user_id=%s, notifying without a name", user_id)
            return None
        return user.name if user else None

    def _plan(self, order: Order, planner, *args, **kwargs) -> WorkflowOutcome:
        try:
            intents = planner(order, *args, **kwargs)
        except Exception:
            logger.exception("Could not plan notifications for order_id=%s", order.id)
            intents = []
        return WorkflowOutcome(order=order, intents=intents)

    async def _dispatch(self, outcome: WorkflowOutcome) -> WorkflowOutcome:
        await self._dispatcher.dispatch_all(outcome.intents)
        return outcome

    async def create_order(
        self,
        actor: Actor,
        restaurant_id: str,
        items: list[tuple[str, int]],
        delivery_address: str | None = None,
    ) -> WorkflowOutcome:
        """
        Create a PENDING order from (menu_item_id, quantity) pairs. Prices and names are
        snapshotted from the catalog; the total is fixed here and never recomputed.
        """
        if not items:
            raise InvalidLineItemsError("At least one item is required")

        restaurant = await self._catalog.find_by_id(restaurant_id)
        if restaurant is None or not restaurant.is_active:
            raise RestaurantUnavailableError("Restaurant not found or inactive")

        item_ids = [menu_item_id for menu_item_id, _ in items]
        if len(set(item_ids)) != len(item_ids):
            raise InvalidLineItemsError("Each menu item may appear only once")
        if any(quantity < 1 for _, quantity in items):
            raise InvalidLineItemsError("Quantity must be at least 1")

        menu = {
            m.id: m
            for m in await self._catalog.find_menu_items(item_ids, restaurant_id)
            if m.restaurant_id == restaurant_id and m.is_available
        }
        if any(menu_item_id not in menu for menu_item_id in item_ids):
            raise InvalidLineItemsError("One or more menu items are invalid or unavailable")

        line_items = [
            LineItem(
                menu_item_id=menu_item_id,
                name=menu[menu_item_id].name,
                unit_price=to_money(menu[menu_item_id].price),
                quantity=quantity,
            )
            for menu_item_id, quantity in items
        ]
        order = Order(
            customer_id=actor.id,
            restaurant_id=restaurant.id,
            items=line_items,
            total_amount=to_money(sum((li.line_total for li in line_items), Decimal("0"))),
            status=INITIAL_STATUS,
            delivery_address=delivery_address,
        )
        entry = StatusHistoryEntry(
            order_id=order.id,
            from_status=None,
            to_status=INITIAL_STATUS,
            changed_by_role=actor.role,
            order_version=order.version,
        )
        order = await self._orders.create_order(order, entry)
        order = order.model_copy(update={"history": [entry]})
        orders_created_total.inc()
        logger.info(
            "Created order_id=%s restaurant_id=%s customer_id=%s total=%s",
            order.id, order.restaurant_id, order.customer_id, order.total_amount,
        )

        return await self._dispatch(self._plan(order, plan_order_created, restaurant, actor.name))

    async def change_status(
        self,
        actor: Actor,
        order_id: str,
        requested: OrderStatus,
        reason: str | None = None,
    ) -> WorkflowOutcome:
        for attempt in range(self._max_retries + 1):
            order = await self._load(order_id)
            restaurant = await self._restaurant_for(order)
            try:
                authorize_transition(actor, order, requested, restaurant.owner_id or None)
            except OrderWorkflowError as e:
                order_transitions_rejected_total.labels(reason=type(e).__name__).inc()
                logger.info(
                    "Rejected order_id=%s %s -> %s by %s %s: %s",
                    order.id, order.status.value, requested.value, actor.role.value, actor.id, e.message,
                )
                raise

            entry = StatusHistoryEntry(
                order_id=order.id,
                from_status=order.status,
                to_status=requested,
                changed_by_role=actor.role,
                order_version=order.version + 1,
            )
            updated = await self._orders.commit_transition(order.id, order.version, requested, entry)
            if updated is not None:
                break
            order_mutation_conflicts_total.labels(operation="change_status").inc()
            logger.info("Version moved on order_id=%s (attempt %d), reloading", order.id, attempt + 1)
        else:
            raise ConflictError("Order was modified concurrently, please retry")

        order_transitions_total.labels(
            from_status=order.status.value, to_status=requested.value, role=actor.role.value
        ).inc()
        logger.info(
            "Order order_id=%s %s -> %s by %s %s",
            updated.id, order.status.value, requested.value, actor.role.value, actor.id,
        )

        rider_name = None
        if requested is OrderStatus.OUT_FOR_DELIVERY:
            rider_name = await self._user_name(updated.rider_id)
        outcome = self._plan(updated, plan_status_change, restaurant, actor, reason=reason, rider_name=rider_name)
        return await self._dispatch(outcome)

    async def rider_change_status(self, actor: Actor, order_id: str, rider_status: str) -> WorkflowOutcome:
        """
        Rider-facing status update: PICKED_UP means OUT_FOR_DELIVERY, DELIVERED passes through.
        ASSIGNED belongs to assign_rider; anything else is rejected before the order is read.
        """
        if actor.role not in (Role.RIDER, Role.ADMIN):
            raise ForbiddenError("Only riders can update delivery status")
        if rider_status == "ASSIGNED":
            raise InvalidRiderStatusError("ASSIGNED status is managed by the system")
        requested = RIDER_STATUSES.get(rider_status)
        if requested is None:
            raise InvalidRiderStatusError("Invalid status for rider")
        return await self.change_status(actor, order_id, requested)

    async def assign_rider(self, actor: Actor, order_id: str, rider_id: str) -> WorkflowOutcome:
        rider = await self._users.find_by_id(rider_id)
        for attempt in range(self._max_retries + 1):
            order = await self._load(order_id)
            restaurant = await self._restaurant_for(order)
            check_assignment(actor, order, rider_id, rider, restaurant.owner_id or None)

            previous_rider_id = order.rider_id
            updated = await self._orders.commit_rider(order.id, order.version, rider_id)
            if updated is not None:
                break
            order_mutation_conflicts_total.labels(operation="assign_rider").inc()
            logger.info("Version moved on order_id=%s (attempt %d), reloading", order.id, attempt + 1)
        else:
            raise ConflictError("Order was modified concurrently, please retry")

        rider_assignments_total.labels(role=actor.role.value).inc()
        logger.info(
            "Assigned rider_id=%s to order_id=%s (previous=%s) by %s %s",
            rider_id, updated.id, previous_rider_id, actor.role.value, actor.id,
        )

        customer_name = await self._user_name(updated.customer_id)
        outcome = self._plan(
            updated, plan_rider_assignment, restaurant, actor, rider, previous_rider_id, customer_name
        )
        return await self._dispatch(outcome)

    async def get_order(self, actor: Actor, order_id: str) -> Order:
        """Order with its status history, if the actor may see it."""
        order = await self._load(order_id)
        restaurant = await self._restaurant_for(order)
        if not can_view(actor, order, restaurant.owner_id or None):
            raise ForbiddenError("Not allowed to view this order")
        history = await self._orders.get_history(order.id)
        return order.model_copy(update={"history": history})

    async def list_orders(
        self,
        actor: Actor,
        status: OrderStatus | None = None,
        restaurant_id: str | None = None,
    ) -> list[Order]:
        owned: list[str] = []
        if actor.role is Role.RESTAURANT_OWNER:
            owned = [r.id for r in await self._catalog.find_by_owner(actor.id)]
        order_filter = order_filter_for(actor, owned, status=status, restaurant_id=restaurant_id)
        if order_filter is None:
            return []
        return await self._orders.list_orders(order_filter)

    async def rider_orders(self, actor: Actor) -> list[Order]:
        """A rider's current and past deliveries, cancelled ones excluded. Admins see every rider's."""
        if actor.role is Role.RIDER:
            order_filter = OrderFilter(rider_id=actor.id, exclude_statuses=[OrderStatus.CANCELLED])
        elif actor.role is Role.ADMIN:
            order_filter = OrderFilter(exclude_statuses=[OrderStatus.CANCELLED])
        else:
            raise ForbiddenError("Only riders can list their deliveries")
        return await self._orders.list_orders(order_filter)
