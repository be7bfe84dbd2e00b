"""
Interfaces of the stores and services the workflow depends on.
Postgres implementations live in orderflow.db, the Redis live channel in orderflow.redis_client.
"""
from typing import Protocol

from orderflow.models import (
    MenuItemRecord,
    Notification,
    Order,
    OrderFilter,
    RestaurantRecord,
    StatusHistoryEntry,
    UserRecord,
)
from orderflow.order_state import OrderStatus


class OrderStore(Protocol):
    async def create_order(self, order: Order, entry: StatusHistoryEntry) -> Order:
        """Insert the order and its initial history row in one transaction."""

    async def get_order(self, order_id: str) -> Order | None:
        """Return the live (not soft-deleted) order, without history."""

    async def get_history(self, order_id: str) -> list[StatusHistoryEntry]:
        """History rows oldest first."""

    async def commit_transition(
        self,
        order_id: str,
        expected_version: int,
        new_status: OrderStatus,
        entry: StatusHistoryEntry,
    ) -> Order | None:
        """
        Set the status and append `entry` atomically, only if the order is still at
        `expected_version`. Returns the updated order, or None if the version moved.
        """

    async def commit_rider(self, order_id: str, expected_version: int, rider_id: str) -> Order | None:
        """Set the rider only if the order is still at `expected_version`; None if the version moved."""

    async def list_orders(self, order_filter: OrderFilter) -> list[Order]:
        """Matching live orders, newest first."""


class NotificationStore(Protocol):
    async def insert(self, notification: Notification) -> Notification: ...

    async def list_for_recipient(
        self,
        recipient_id: str,
        is_read: bool | None,
        offset: int,
        limit: int,
    ) -> tuple[list[Notification], int]:
        """Page of notifications newest first, plus the total matching count."""

    async def mark_read(self, recipient_id: str, notification_id: str) -> Notification | None: ...

    async def mark_all_read(self, recipient_id: str) -> int: ...

    async def unread_count(self, recipient_id: str) -> int: ...


class UserDirectory(Protocol):
    async def find_by_id(self, user_id: str) -> UserRecord | None: ...


class RestaurantCatalog(Protocol):
    async def find_by_id(self, restaurant_id: str) -> RestaurantRecord | None: ...

    async def find_by_owner(self, owner_id: str) -> list[RestaurantRecord]: ...

    async def find_menu_items(self, item_ids: list[str], restaurant_id: str) -> list[MenuItemRecord]:
        """Menu items among `item_ids` that belong to `restaurant_id` (availability not filtered)."""


class ConnectionRegistry(Protocol):
    async def publish(self, recipient_id: str, payload: dict) -> None:
        """Fire-and-forget push to every live session of the recipient."""
