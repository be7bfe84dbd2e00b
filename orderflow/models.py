"""
Shared data model: orders, their status history, notifications, and the read-only
records this service gets from the user directory and restaurant catalog.
"""
import uuid
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from pydantic import BaseModel, Field

from orderflow.order_state import OrderStatus

CENTS = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


class Role(str, Enum):
    CUSTOMER = "CUSTOMER"
    RESTAURANT_OWNER = "RESTAURANT_OWNER"
    RIDER = "RIDER"
    ADMIN = "ADMIN"


class NotificationType(str, Enum):
    ORDER_CREATED = "order_created"
    ORDER_ACCEPTED = "order_accepted"
    ORDER_PREPARED = "order_prepared"
    RIDER_ASSIGNED = "rider_assigned"
    RIDER_REASSIGNED = "rider_reassigned"
    ORDER_PICKED_UP = "order_picked_up"
    ORDER_DELIVERED = "order_delivered"
    ORDER_CANCELLED = "order_cancelled"


# Collaborator records (owned by the account and catalog services)

class UserRecord(BaseModel):
    id: str
    name: str = ""
    role: Role
    is_active: bool = True


class RestaurantRecord(BaseModel):
    id: str
    name: str = ""
    owner_id: str
    is_active: bool = True


class MenuItemRecord(BaseModel):
    id: str
    restaurant_id: str
    name: str
    price: Decimal
    is_available: bool = True


class Actor(BaseModel):
    """Authenticated caller of a workflow operation."""
    id: str
    role: Role
    name: str = ""

    @classmethod
    def from_user(cls, user: UserRecord) -> "Actor":
        return cls(id=user.id, role=user.role, name=user.name)


# Orders

class LineItem(BaseModel):
    menu_item_id: str
    name: str
    unit_price: Decimal
    quantity: int = Field(ge=1)

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


class StatusHistoryEntry(BaseModel):
    id: str = Field(default_factory=new_id)
    order_id: str
    from_status: OrderStatus | None
    to_status: OrderStatus
    changed_by_role: Role
    order_version: int = 0  # order version this row committed; history is read back in this order
    created_at: datetime = Field(default_factory=utcnow)


class Order(BaseModel):
    id: str = Field(default_factory=new_id)
    customer_id: str
    restaurant_id: str
    rider_id: str | None = None
    items: list[LineItem]
    total_amount: Decimal
    status: OrderStatus = OrderStatus.PENDING
    delivery_address: str | None = None
    version: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    deleted_at: datetime | None = None
    history: list[StatusHistoryEntry] = Field(default_factory=list)

    @property
    def short_id(self) -> str:
        return self.id[:8]


class OrderFilter(BaseModel):
    """Role-scoped query over orders. None means unconstrained."""
    customer_id: str | None = None
    restaurant_ids: list[str] | None = None
    rider_id: str | None = None
    include_unassigned: bool = False  # with rider_id: rider_id matches OR rider is NULL
    status: OrderStatus | None = None
    exclude_statuses: list[OrderStatus] = Field(default_factory=list)


# Notifications

class Notification(BaseModel):
    id: str = Field(default_factory=new_id)
    recipient_id: str
    type: NotificationType
    title: str
    message: str
    order_id: str
    restaurant_id: str | None = None
    is_read: bool = False
    metadata: dict = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


class NotificationIntent(BaseModel):
    """A notification still to be persisted and pushed; produced by the workflow as data."""
    recipient_id: str
    type: NotificationType
    title: str
    message: str
    order_id: str
    restaurant_id: str | None = None
    metadata: dict = Field(default_factory=dict)

    def to_notification(self) -> Notification:
        return Notification(**self.model_dump())


class WorkflowOutcome(BaseModel):
    order: Order
    intents: list[NotificationIntent] = Field(default_factory=list)
