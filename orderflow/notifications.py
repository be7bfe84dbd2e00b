"""
Order notifications: message templates, per-event recipient planning, and the dispatcher that
persists each notification before pushing it to the recipient's live channel.
"""
import asyncio
import logging
import math

from orderflow.collaborators import ConnectionRegistry, NotificationStore
from orderflow.config import settings
from orderflow.errors import NotFoundError
from orderflow.metrics import (
    notification_push_failed_total,
    notifications_dispatched_total,
    notifications_failed_total,
)
from orderflow.models import (
    Actor,
    Notification,
    NotificationIntent,
    NotificationType,
    Order,
    RestaurantRecord,
    UserRecord,
)
from orderflow.order_state import OrderStatus

logger = logging.getLogger(__name__)

# template name -> (type, title, message). Messages are str.format'ed with the event context.
TEMPLATES: dict[str, tuple[NotificationType, str, str]] = {
    "order_received": (
        NotificationType.ORDER_CREATED,
        "New Order Received",
        "New order #{short_id} received from {customer_name}",
    ),
    "order_placed": (
        NotificationType.ORDER_CREATED,
        "Order Placed",
        "Your order #{short_id} has been placed at {restaurant_name}",
    ),
    "order_accepted": (
        NotificationType.ORDER_ACCEPTED,
        "Order Accepted",
        "Your order #{short_id} has been accepted by {restaurant_name}",
    ),
    "order_preparing": (
        NotificationType.ORDER_PREPARED,
        "Order Being Prepared",
        "Your order #{short_id} is being prepared at {restaurant_name}",
    ),
    "order_ready": (
        NotificationType.ORDER_PREPARED,
        "Order Ready",
        "Your order #{short_id} is ready for pickup from {restaurant_name}",
    ),
    "order_ready_rider": (
        NotificationType.ORDER_PREPARED,
        "Order Ready for Pickup",
        "Order #{short_id} is ready for pickup at {restaurant_name}",
    ),
    "order_picked_up": (
        NotificationType.ORDER_PICKED_UP,
        "Order Picked Up",
        "Your order #{short_id} has been picked up and is out for delivery",
    ),
    "order_delivered": (
        NotificationType.ORDER_DELIVERED,
        "Order Delivered",
        "Your order #{short_id} has been delivered successfully",
    ),
    "order_delivered_restaurant": (
        NotificationType.ORDER_DELIVERED,
        "Order Delivered",
        "Order #{short_id} has been delivered successfully",
    ),
    "order_cancelled": (
        NotificationType.ORDER_CANCELLED,
        "Order Cancelled",
        "Order #{short_id} has been cancelled{reason_suffix}",
    ),
    "rider_assigned": (
        NotificationType.RIDER_ASSIGNED,
        "New Delivery Assigned",
        "You have been assigned to deliver order #{short_id} from {restaurant_name}",
    ),
    "rider_assigned_customer": (
        NotificationType.RIDER_ASSIGNED,
        "Rider Assigned",
        "Rider {rider_name} will deliver your order #{short_id}",
    ),
    "rider_assigned_restaurant": (
        NotificationType.RIDER_ASSIGNED,
        "Rider Assigned",
        "Rider {rider_name} has been assigned to order #{short_id}",
    ),
    "rider_reassigned": (
        NotificationType.RIDER_REASSIGNED,
        "Order Reassigned",
        "Order #{short_id} has been reassigned to another rider",
    ),
}


def render(
    template: str,
    recipient_id: str,
    order: Order,
    context: dict,
    metadata: dict | None = None,
) -> NotificationIntent:
    ntype, title, message = TEMPLATES[template]
    return NotificationIntent(
        recipient_id=recipient_id,
        type=ntype,
        title=title,
        message=message.format(short_id=order.short_id, **context),
        order_id=order.id,
        restaurant_id=order.restaurant_id,
        metadata=metadata or {},
    )


def _context(restaurant: RestaurantRecord, **extra) -> dict:
    ctx = {"restaurant_name": restaurant.name or "the restaurant"}
    ctx.update(extra)
    return ctx


def plan_order_created(order: Order, restaurant: RestaurantRecord, customer_name: str) -> list[NotificationIntent]:
    ctx = _context(restaurant, customer_name=customer_name or "Customer")
    return [
        render("order_received", restaurant.owner_id, order, ctx, {"customerName": customer_name}),
        render("order_placed", order.customer_id, order, ctx, {"restaurantName": restaurant.name}),
    ]


def plan_status_change(
    order: Order,
    restaurant: RestaurantRecord,
    actor: Actor,
    reason: str | None = None,
    rider_name: str | None = None,
) -> list[NotificationIntent]:
    """Recipients for the transition that just moved `order` into its current status."""
    ctx = _context(restaurant)
    status = order.status

    if status is OrderStatus.ACCEPTED:
        return [render("order_accepted", order.customer_id, order, ctx)]

    if status is OrderStatus.PREPARING:
        return [render("order_preparing", order.customer_id, order, ctx)]

    if status is OrderStatus.READY_FOR_PICKUP:
        intents = [render("order_ready", order.customer_id, order, ctx)]
        if order.rider_id:
            intents.append(render("order_ready_rider", order.rider_id, order, ctx))
        return intents

    if status is OrderStatus.OUT_FOR_DELIVERY:
        return [render("order_picked_up", order.customer_id, order, ctx, {"riderName": rider_name})]

    if status is OrderStatus.DELIVERED:
        intents = [render("order_delivered", order.customer_id, order, ctx)]
        if restaurant.owner_id:
            intents.append(render("order_delivered_restaurant", restaurant.owner_id, order, ctx))
        return intents

    if status is OrderStatus.CANCELLED:
        ctx["reason_suffix"] = f": {reason}" if reason else ""
        metadata = {"reason": reason} if reason else {}
        recipients = [order.customer_id, restaurant.owner_id]
        if order.rider_id:
            recipients.append(order.rider_id)
        # nobody is told about their own cancellation
        targets = []
        for recipient_id in recipients:
            if recipient_id and recipient_id != actor.id and recipient_id not in targets:
                targets.append(recipient_id)
        return [render("order_cancelled", rid, order, ctx, metadata) for rid in targets]

    return []


def plan_rider_assignment(
    order: Order,
    restaurant: RestaurantRecord,
    actor: Actor,
    rider: UserRecord,
    previous_rider_id: str | None,
    customer_name: str | None = None,
) -> list[NotificationIntent]:
    ctx = _context(restaurant, rider_name=rider.name or "assigned")
    intents = [
        render(
            "rider_assigned", rider.id, order, ctx,
            {"customerName": customer_name, "restaurantName": restaurant.name},
        ),
        render("rider_assigned_customer", order.customer_id, order, ctx, {"riderName": rider.name}),
    ]
    if restaurant.owner_id and restaurant.owner_id != actor.id:
        intents.append(
            render("rider_assigned_restaurant", restaurant.owner_id, order, ctx, {"riderName": rider.name})
        )
    if previous_rider_id and previous_rider_id != rider.id and previous_rider_id != actor.id:
        intents.append(render("rider_reassigned", previous_rider_id, order, ctx))
    return intents


class NotificationDispatcher:
    """
    Persists notifications and pushes them to live channels.
    Persistence is the durability guarantee; the push is best-effort and always happens after it.
    """

    def __init__(self, store: NotificationStore, registry: ConnectionRegistry):
        self._store = store
        self._registry = registry

    async def dispatch(self, intent: NotificationIntent) -> Notification:
        notification = await self._store.insert(intent.to_notification())
        notifications_dispatched_total.labels(type=notification.type.value).inc()
        try:
            await self._registry.publish(
                notification.recipient_id,
                {"event": "notification", "data": notification.model_dump(mode="json")},
            )
        except Exception as e:
            notification_push_failed_total.inc()
            logger.warning(
                "Live push failed for notification_id=%s recipient=%s: %s",
                notification.id,
                notification.recipient_id,
                e,
            )
        return notification

    async def _dispatch_one(self, intent: NotificationIntent) -> Notification | None:
        try:
            return await self.dispatch(intent)
        except Exception:
            notifications_failed_total.labels(type=intent.type.value).inc()
            logger.exception(
                "Failed to persist %s notification for recipient=%s order_id=%s",
                intent.type.value,
                intent.recipient_id,
                intent.order_id,
            )
            return None

    async def dispatch_all(self, intents: list[NotificationIntent]) -> list[Notification]:
        """Deliver each intent independently. Returns the notifications that were persisted."""
        if not intents:
            return []
        results = await asyncio.gather(*(self._dispatch_one(i) for i in intents))
        return [n for n in results if n is not None]


class NotificationService:
    """Recipient-side reads and read-flag updates."""

    def __init__(self, store: NotificationStore):
        self._store = store

    async def list_notifications(self, recipient_id: str, is_read: bool | None = None, page: int = 1, limit: int = 20) -> dict:
        page = max(page, 1)
        limit = min(max(limit, 1), settings.notifications_max_page_size)
        notifications, total = await self._store.list_for_recipient(
            recipient_id, is_read, (page - 1) * limit, limit
        )
        return {
            "notifications": notifications,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit),
            },
        }

    async def mark_read(self, recipient_id: str, notification_id: str) -> Notification:
        notification = await self._store.mark_read(recipient_id, notification_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        return notification

    async def mark_all_read(self, recipient_id: str) -> int:
        return await self._store.mark_all_read(recipient_id)

    async def unread_count(self, recipient_id: str) -> int:
        return await self._store.unread_count(recipient_id)
