"""Order persistence.

``insert_unique`` is the only way an Order is created. It is a conditional
insert keyed on ``session_id``: when an Order for the session already exists
it raises ``ConflictDuplicateOrder`` instead of writing a second one.
"""

from abc import ABC, abstractmethod
from datetime import datetime
import threading
from typing import Callable, Optional

from psycopg.types.json import Jsonb

from .db import get_conn
from .errors import ConflictDuplicateOrder
from .models import Order

ORDER_COLUMNS = (
    "id",
    "session_id",
    "payment_intent_id",
    "user_id",
    "customer_email",
    "products",
    "subtotal_minor_units",
    "shipping_cost_minor_units",
    "shipping_name",
    "total_minor_units",
    "currency",
    "status",
    "shipping_address",
    "created_at",
    "updated_at",
)


class OrderStore(ABC):
    @abstractmethod
    def find_by_session(self, session_id: str) -> Optional[Order]:
        ...

    @abstractmethod
    def get(self, order_id: str) -> Optional[Order]:
        ...

    @abstractmethod
    def insert_unique(self, order: Order) -> Order:
        """Persist ``order`` unless one already exists for its session (raises ConflictDuplicateOrder)."""
        ...

    @abstractmethod
    def list_for_user(self, user_id: str) -> list[Order]:
        """Orders for a user, newest first."""
        ...

    @abstractmethod
    def list_all(self) -> list[Order]:
        """Every order, newest first."""
        ...

    @abstractmethod
    def update_status(self, order_id: str, status: str, updated_at: datetime) -> Optional[Order]:
        ...


class InMemoryOrderStore(OrderStore):
    """Dict-backed store for tests and local runs. Copies on the way in and out."""

    def __init__(self):
        self._lock = threading.Lock()
        self._orders: dict[str, Order] = {}
        self._by_session: dict[str, str] = {}

    def find_by_session(self, session_id):
        with self._lock:
            order_id = self._by_session.get(session_id)
            order = self._orders.get(order_id) if order_id else None
            return order.model_copy(deep=True) if order else None

    def get(self, order_id):
        with self._lock:
            order = self._orders.get(order_id)
            return order.model_copy(deep=True) if order else None

    def insert_unique(self, order):
        with self._lock:
            if order.session_id in self._by_session:
                raise ConflictDuplicateOrder(order.session_id)
            self._orders[order.id] = order.model_copy(deep=True)
            self._by_session[order.session_id] = order.id
            return order.model_copy(deep=True)

    def list_for_user(self, user_id):
        with self._lock:
            orders = [o for o in self._orders.values() if o.user_id == user_id]
        return [o.model_copy(deep=True) for o in sorted(orders, key=lambda o: o.created_at, reverse=True)]

    def list_all(self):
        with self._lock:
            orders = list(self._orders.values())
        return [o.model_copy(deep=True) for o in sorted(orders, key=lambda o: o.created_at, reverse=True)]

    def update_status(self, order_id, status, updated_at):
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return None
            updated = order.model_copy(update={"status": status, "updated_at": updated_at})
            self._orders[order_id] = updated
            return updated.model_copy(deep=True)

    def count(self) -> int:
        with self._lock:
            return len(self._orders)


def _row_to_order(row: dict) -> Order:
    return Order.model_validate({column: row[column] for column in ORDER_COLUMNS})


class PostgresOrderStore(OrderStore):
    """Orders table in Postgres; uniqueness comes from the orders_session_id_key constraint."""

    def __init__(self, connect: Callable = get_conn):
        self.connect = connect

    def _select(self, where: str = "", params: tuple = (), order_by: str = "") -> list[Order]:
        sql = f"SELECT {', '.join(ORDER_COLUMNS)} FROM orders"
        if where:
            sql += f" WHERE {where}"
        if order_by:
            sql += f" ORDER BY {order_by}"
        with self.connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_order(r) for r in rows]

    def find_by_session(self, session_id):
        rows = self._select("session_id = %s", (session_id,))
        return rows[0] if rows else None

    def get(self, order_id):
        rows = self._select("id = %s", (order_id,))
        return rows[0] if rows else None

    def insert_unique(self, order):
        data = order.model_dump()
        data["products"] = Jsonb(data["products"])
        data["shipping_address"] = Jsonb(data["shipping_address"]) if data["shipping_address"] is not None else None

        with self.connect() as conn:
            row = conn.execute(
                f"INSERT INTO orders ({', '.join(ORDER_COLUMNS)}) "
                f"VALUES ({', '.join(['%s'] * len(ORDER_COLUMNS))}) "
                f"ON CONFLICT (session_id) DO NOTHING "
                f"RETURNING {', '.join(ORDER_COLUMNS)}",
                tuple(data[c] for c in ORDER_COLUMNS),
            ).fetchone()

        if row is None:
            raise ConflictDuplicateOrder(order.session_id)
        return _row_to_order(row)

    def list_for_user(self, user_id):
        return self._select("user_id = %s", (user_id,), order_by="created_at DESC")

    def list_all(self):
        return self._select(order_by="created_at DESC")

    def update_status(self, order_id, status, updated_at):
        with self.connect() as conn:
            row = conn.execute(
                f"UPDATE orders SET status = %s, updated_at = %s WHERE id = %s "
                f"RETURNING {', '.join(ORDER_COLUMNS)}",
                (status, updated_at, order_id),
            ).fetchone()
        return _row_to_order(row) if row else None
