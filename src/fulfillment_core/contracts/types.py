"""
Domain enumerations shared by intake, workers, tracking and relays.
"""

from enum import Enum


class OrderType(str, Enum):
    """How the customer receives the order."""

    DINE_IN = "dine_in"
    TAKEOUT = "takeout"
    DELIVERY = "delivery"

    def __str__(self) -> str:
        return self.value


class OrderStatus(str, Enum):
    """
    Order lifecycle.

    received -> cooking -> ready -> completed, with cancelled reachable from
    any non-terminal state.
    """

    RECEIVED = "received"
    COOKING = "cooking"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)

    def can_transition_to(self, new_status: "OrderStatus") -> bool:
        return new_status in ALLOWED_TRANSITIONS[self]


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.RECEIVED: frozenset({OrderStatus.COOKING, OrderStatus.CANCELLED}),
    OrderStatus.COOKING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


class WorkerStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"

    def __str__(self) -> str:
        return self.value


class HandlerOutcome(str, Enum):
    """
    Result of handling one broker delivery.

    The consumer adapter maps it to a broker call:
    - COMPLETED: ack
    - RETRYABLE_FAILURE: nack with requeue
    - PERMANENT_FAILURE: nack without requeue (dead-lettered when configured)
    """

    COMPLETED = "completed"
    RETRYABLE_FAILURE = "retryable_failure"
    PERMANENT_FAILURE = "permanent_failure"

    def __str__(self) -> str:
        return self.value


def parse_order_types(value: str | None) -> list[OrderType]:
    """
    Parse a comma-separated specialization list ("dine_in,takeout").

    Blank input means "all types" and returns an empty list.

    Raises:
        ValueError: on an unknown order type
    """
    if not value:
        return []

    order_types: list[OrderType] = []
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        order_type = OrderType(part)
        if order_type not in order_types:
            order_types.append(order_type)
    return order_types
