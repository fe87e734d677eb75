from typing import Callable, Optional

from . import settings
from .errors import IllegalTransition, InvalidStatus, OrderNotFound
from .logging import get_logger
from .models import ORDER_STATUSES, Order, utcnow
from .store import OrderStore

logger = get_logger(__name__)

PERMISSIVE = "permissive"
STRICT = "strict"
POLICIES = (PERMISSIVE, STRICT)

TERMINAL_STATUSES = frozenset({"delivered", "cancelled"})

# Forward-only table used by the strict policy
STRICT_TRANSITIONS: dict[str, frozenset] = {
    "pending": frozenset({"paid", "cancelled"}),
    "paid": frozenset({"processing", "shipped", "cancelled"}),
    "processing": frozenset({"shipped", "cancelled"}),
    "shipped": frozenset({"delivered"}),
    "delivered": frozenset(),
    "cancelled": frozenset(),
}


def is_transition_allowed(current: str, new: str, policy: str = PERMISSIVE) -> bool:
    """
    permissive: back-office may move an order between any states, except
    back into ``pending`` once it has left it.
    strict: only the forward moves in STRICT_TRANSITIONS; terminal states stay put.
    Re-applying the current status is always allowed.
    """
    if current == new:
        return True
    if policy == STRICT:
        if current in TERMINAL_STATUSES:
            return False
        return new in STRICT_TRANSITIONS.get(current, frozenset())
    return new != "pending"


class OrderStatusController:
    def __init__(
        self,
        store: OrderStore,
        policy: Optional[str] = None,
        clock: Callable = utcnow,
    ):
        policy = (policy or settings.ORDER_STATUS_POLICY).lower()
        if policy not in POLICIES:
            raise ValueError(f"Unknown order status policy {policy!r}; expected one of {POLICIES}")
        self.store = store
        self.policy = policy
        self.clock = clock

    def transition(self, order_id: str, new_status: str) -> Order:
        if not isinstance(new_status, str) or new_status not in ORDER_STATUSES:
            raise InvalidStatus(
                f"Invalid status {new_status!r}. Must be one of {list(ORDER_STATUSES)}",
                details={"allowed": list(ORDER_STATUSES)},
            )

        order = self.store.get(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found", details={"order_id": order_id})

        if not is_transition_allowed(order.status, new_status, self.policy):
            raise IllegalTransition(
                f"Cannot move order from {order.status} to {new_status}",
                details={"order_id": order_id, "from": order.status, "to": new_status, "policy": self.policy},
            )

        updated = self.store.update_status(order_id, new_status, self.clock())
        if updated is None:
            raise OrderNotFound(f"Order {order_id} not found", details={"order_id": order_id})

        logger.info("Order status updated", order_id=order_id, from_status=order.status, to_status=new_status)
        return updated
