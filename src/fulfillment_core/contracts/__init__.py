"""Message contracts - envelopes and enumerations."""

from fulfillment_core.contracts.envelope import (
    EnvelopeError,
    StatusNotification,
    WorkItem,
    WorkMessage,
    routing_key_for,
)
from fulfillment_core.contracts.types import (
    HandlerOutcome,
    OrderStatus,
    OrderType,
    WorkerStatus,
    parse_order_types,
)

__all__ = [
    "EnvelopeError",
    "StatusNotification",
    "WorkItem",
    "WorkMessage",
    "routing_key_for",
    "HandlerOutcome",
    "OrderStatus",
    "OrderType",
    "WorkerStatus",
    "parse_order_types",
]
