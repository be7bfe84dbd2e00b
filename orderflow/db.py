"""
Async Postgres: orders (current state + version), order_status_history (append-only audit trail),
notifications. Also read-only lookups into the users / restaurants / menu_items tables owned by
the account and catalog services.
Status changes run in a single transaction: version-checked UPDATE, then history INSERT stamped with
the version it committed. History is read back in version order, not by app-host timestamps.
"""
import json
import logging
from contextlib import contextmanager

import asyncpg

from orderflow.config import settings
from orderflow.errors import StoreError
from orderflow.models import (
    LineItem,
    MenuItemRecord,
    Notification,
    NotificationType,
    Order,
    OrderFilter,
    RestaurantRecord,
    Role,
    StatusHistoryEntry,
    UserRecord,
)
from orderflow.order_state import OrderStatus

logger = logging.getLogger(__name__)

_pool: asyncpg.Pool | None = None


async def get_pool() -> asyncpg.Pool:
    global _pool
    if _pool is None:
        _pool = await asyncpg.create_pool(
            settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            command_timeout=settings.db_command_timeout,
        )
    return _pool


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


@contextmanager
def _store_errors(operation: str):
    try:
        yield
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, TimeoutError) as e:
        logger.exception("Datastore failure during %s", operation)
        raise StoreError(f"{operation} failed") from e


async def init_schema(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        # Owned by the account and catalog services; created here only when missing (local runs).
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id VARCHAR(64) PRIMARY KEY,
                name VARCHAR(255) NOT NULL DEFAULT '',
                role VARCHAR(32) NOT NULL,
                is_active BOOLEAN NOT NULL DEFAULT TRUE
            );
        """)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS restaurants (
                id VARCHAR(64) PRIMARY KEY,
                name VARCHAR(255) NOT NULL DEFAULT '',
                owner_id VARCHAR(64) NOT NULL,
                is_active BOOLEAN NOT NULL DEFAULT TRUE
            );
        """)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS menu_items (
                id VARCHAR(64) PRIMARY KEY,
                restaurant_id VARCHAR(64) NOT NULL,
                name VARCHAR(255) NOT NULL,
                price NUMERIC(10, 2) NOT NULL,
                is_available BOOLEAN NOT NULL DEFAULT TRUE
            );
        """)

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS orders (
                id VARCHAR(64) PRIMARY KEY,
                customer_id VARCHAR(64) NOT NULL,
                restaurant_id VARCHAR(64) NOT NULL,
                rider_id VARCHAR(64),
                items JSONB NOT NULL,
                total_amount NUMERIC(10, 2) NOT NULL CHECK (total_amount >= 0),
                status VARCHAR(32) NOT NULL DEFAULT 'PENDING',
                delivery_address TEXT,
                version INT NOT NULL DEFAULT 0,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                deleted_at TIMESTAMPTZ
            );
        """)
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status);")
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_orders_customer_id ON orders(customer_id);")
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_orders_restaurant_id ON orders(restaurant_id);")
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_orders_rider_id ON orders(rider_id);")
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS order_status_history (
                id VARCHAR(64) PRIMARY KEY,
                order_id VARCHAR(64) NOT NULL REFERENCES orders(id),
                from_status VARCHAR(32),
                to_status VARCHAR(32) NOT NULL,
                changed_by_role VARCHAR(32) NOT NULL,
                order_version INT NOT NULL DEFAULT 0,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
        """)
        await conn.execute(
            "ALTER TABLE order_status_history ADD COLUMN IF NOT EXISTS order_version INT NOT NULL DEFAULT 0;"
        )
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_order_status_history_order_version
            ON order_status_history(order_id, order_version);
        """)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS notifications (
                id VARCHAR(64) PRIMARY KEY,
                recipient_id VARCHAR(64) NOT NULL,
                type VARCHAR(32) NOT NULL,
                title VARCHAR(255) NOT NULL,
                message TEXT NOT NULL,
                order_id VARCHAR(64) NOT NULL,
                restaurant_id VARCHAR(64),
                is_read BOOLEAN NOT NULL DEFAULT FALSE,
                metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_notifications_recipient
            ON notifications(recipient_id, is_read, created_at DESC);
        """)
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_notifications_order_id ON notifications(order_id);")


def _row_to_order(row) -> Order:
    return Order(
        id=row["id"],
        customer_id=row["customer_id"],
        restaurant_id=row["restaurant_id"],
        rider_id=row["rider_id"],
        items=[LineItem(**item) for item in json.loads(row["items"])],
        total_amount=row["total_amount"],
        status=OrderStatus(row["status"]),
        delivery_address=row["delivery_address"],
        version=row["version"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        deleted_at=row["deleted_at"],
    )


def _row_to_history(row) -> StatusHistoryEntry:
    return StatusHistoryEntry(
        id=row["id"],
        order_id=row["order_id"],
        from_status=OrderStatus(row["from_status"]) if row["from_status"] else None,
        to_status=OrderStatus(row["to_status"]),
        changed_by_role=Role(row["changed_by_role"]),
        order_version=row["order_version"],
        created_at=row["created_at"],
    )


def _row_to_notification(row) -> Notification:
    return Notification(
        id=row["id"],
        recipient_id=row["recipient_id"],
        type=NotificationType(row["type"]),
        title=row["title"],
        message=row["message"],
        order_id=row["order_id"],
        restaurant_id=row["restaurant_id"],
        is_read=row["is_read"],
        metadata=json.loads(row["metadata"]) if row["metadata"] else {},
        created_at=row["created_at"],
    )


_INSERT_HISTORY = """
    INSERT INTO order_status_history
        (id, order_id, from_status, to_status, changed_by_role, order_version, created_at)
    VALUES ($1, $2, $3, $4, $5, $6, $7);
"""


async def _insert_history(conn, entry: StatusHistoryEntry) -> None:
    await conn.execute(
        _INSERT_HISTORY,
        entry.id,
        entry.order_id,
        entry.from_status.value if entry.from_status else None,
        entry.to_status.value,
        entry.changed_by_role.value,
        entry.order_version,
        entry.created_at,
    )


class PostgresOrderStore:
    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def create_order(self, order: Order, entry: StatusHistoryEntry) -> Order:
        items_json = json.dumps([item.model_dump(mode="json") for item in order.items])
        with _store_errors("create_order"):
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(
                        """
                        INSERT INTO orders (id, customer_id, restaurant_id, rider_id, items, total_amount,
                                            status, delivery_address, version, created_at, updated_at)
                        VALUES ($1, $2, $3, $4, $5::jsonb, $6, $7, $8, $9, $10, $11);
                        """,
                        order.id,
                        order.customer_id,
                        order.restaurant_id,
                        order.rider_id,
                        items_json,
                        order.total_amount,
                        order.status.value,
                        order.delivery_address,
                        order.version,
                        order.created_at,
                        order.updated_at,
                    )
                    await _insert_history(conn, entry)
        return order

    async def get_order(self, order_id: str) -> Order | None:
        with _store_errors("get_order"):
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT * FROM orders WHERE id = $1 AND deleted_at IS NULL;",
                    order_id,
                )
        return _row_to_order(row) if row else None

    async def get_history(self, order_id: str) -> list[StatusHistoryEntry]:
        with _store_errors("get_history"):
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT * FROM order_status_history
                    WHERE order_id = $1
                    ORDER BY order_version ASC, created_at ASC;
                    """,
                    order_id,
                )
        return [_row_to_history(r) for r in rows]

    async def commit_transition(
        self,
        order_id: str,
        expected_version: int,
        new_status: OrderStatus,
        entry: StatusHistoryEntry,
    ) -> Order | None:
        with _store_errors("commit_transition"):
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        """
                        UPDATE orders
                        SET status = $1, version = version + 1, updated_at = NOW()
                        WHERE id = $2 AND version = $3 AND deleted_at IS NULL
                        RETURNING *;
                        """,
                        new_status.value,
                        order_id,
                        expected_version,
                    )
                    if row is None:
                        return None
                    await _insert_history(conn, entry.model_copy(update={"order_version": row["version"]}))
        return _row_to_order(row)

    async def commit_rider(self, order_id: str, expected_version: int, rider_id: str) -> Order | None:
        with _store_errors("commit_rider"):
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    UPDATE orders
                    SET rider_id = $1, version = version + 1, updated_at = NOW()
                    WHERE id = $2 AND version = $3 AND deleted_at IS NULL
                    RETURNING *;
                    """,
                    rider_id,
                    order_id,
                    expected_version,
                )
        return _row_to_order(row) if row else None

    async def list_orders(self, order_filter: OrderFilter) -> list[Order]:
        clauses = ["deleted_at IS NULL"]
        args: list = []

        def arg(value) -> str:
            args.append(value)
            return f"${len(args)}"

        if order_filter.customer_id is not None:
            clauses.append(f"customer_id = {arg(order_filter.customer_id)}")
        if order_filter.restaurant_ids is not None:
            clauses.append(f"restaurant_id = ANY({arg(order_filter.restaurant_ids)}::varchar[])")
        if order_filter.rider_id is not None:
            if order_filter.include_unassigned:
                clauses.append(f"(rider_id = {arg(order_filter.rider_id)} OR rider_id IS NULL)")
            else:
                clauses.append(f"rider_id = {arg(order_filter.rider_id)}")
        if order_filter.status is not None:
            clauses.append(f"status = {arg(order_filter.status.value)}")
        if order_filter.exclude_statuses:
            excluded = [s.value for s in order_filter.exclude_statuses]
            clauses.append(f"status <> ALL({arg(excluded)}::varchar[])")

        query = f"SELECT * FROM orders WHERE {' AND '.join(clauses)} ORDER BY created_at DESC;"
        with _store_errors("list_orders"):
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(query, *args)
        return [_row_to_order(r) for r in rows]


class PostgresNotificationStore:
    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def insert(self, notification: Notification) -> Notification:
        with _store_errors("insert_notification"):
            async with self._pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO notifications (id, recipient_id, type, title, message, order_id,
                                               restaurant_id, is_read, metadata, created_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::jsonb, $10);
                    """,
                    notification.id,
                    notification.recipient_id,
                    notification.type.value,
                    notification.title,
                    notification.message,
                    notification.order_id,
                    notification.restaurant_id,
                    notification.is_read,
                    json.dumps(notification.metadata),
                    notification.created_at,
                )
        return notification

    async def list_for_recipient(
        self,
        recipient_id: str,
        is_read: bool | None,
        offset: int,
        limit: int,
    ) -> tuple[list[Notification], int]:
        where = "recipient_id = $1"
        args: list = [recipient_id]
        if is_read is not None:
            where += " AND is_read = $2"
            args.append(is_read)
        with _store_errors("list_notifications"):
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT * FROM notifications WHERE {where}
                    ORDER BY created_at DESC
                    LIMIT {int(limit)} OFFSET {int(offset)};
                    """,
                    *args,
                )
                total = await conn.fetchval(f"SELECT COUNT(*) FROM notifications WHERE {where};", *args)
        return [_row_to_notification(r) for r in rows], total

    async def mark_read(self, recipient_id: str, notification_id: str) -> Notification | None:
        with _store_errors("mark_read"):
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    UPDATE notifications SET is_read = TRUE
                    WHERE id = $1 AND recipient_id = $2
                    RETURNING *;
                    """,
                    notification_id,
                    recipient_id,
                )
        return _row_to_notification(row) if row else None

    async def mark_all_read(self, recipient_id: str) -> int:
        with _store_errors("mark_all_read"):
            async with self._pool.acquire() as conn:
                status = await conn.execute(
                    "UPDATE notifications SET is_read = TRUE WHERE recipient_id = $1 AND is_read = FALSE;",
                    recipient_id,
                )
        # asyncpg returns the command tag, e.g. "UPDATE 3"
        return int(status.split()[-1])

    async def unread_count(self, recipient_id: str) -> int:
        with _store_errors("unread_count"):
            async with self._pool.acquire() as conn:
                return await conn.fetchval(
                    "SELECT COUNT(*) FROM notifications WHERE recipient_id = $1 AND is_read = FALSE;",
                    recipient_id,
                )


class PostgresUserDirectory:
    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def find_by_id(self, user_id: str) -> UserRecord | None:
        with _store_errors("find_user"):
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT id, name, role, is_active FROM users WHERE id = $1;",
                    user_id,
                )
        if row is None:
            return None
        return UserRecord(id=row["id"], name=row["name"], role=Role(row["role"]), is_active=row["is_active"])


class PostgresRestaurantCatalog:
    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def find_by_id(self, restaurant_id: str) -> RestaurantRecord | None:
        with _store_errors("find_restaurant"):
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT id, name, owner_id, is_active FROM restaurants WHERE id = $1;",
                    restaurant_id,
                )
        return RestaurantRecord(**dict(row)) if row else None

    async def find_by_owner(self, owner_id: str) -> list[RestaurantRecord]:
        with _store_errors("find_restaurants_by_owner"):
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    "SELECT id, name, owner_id, is_active FROM restaurants WHERE owner_id = $1;",
                    owner_id,
                )
        return [RestaurantRecord(**dict(r)) for r in rows]

    async def find_menu_items(self, item_ids: list[str], restaurant_id: str) -> list[MenuItemRecord]:
        with _store_errors("find_menu_items"):
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT id, restaurant_id, name, price, is_available FROM menu_items
                    WHERE id = ANY($1::varchar[]) AND restaurant_id = $2;
                    """,
                    item_ids,
                    restaurant_id,
                )
        return [MenuItemRecord(**dict(r)) for r in rows]
