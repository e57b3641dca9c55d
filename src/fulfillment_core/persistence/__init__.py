"""Fulfillment persistence - models and repository."""

from fulfillment_core.persistence.models import (
    FulfillmentBase,
    Order,
    OrderItem,
    OrderStatusLog,
    Worker,
)
from fulfillment_core.persistence.repo import (
    FulfillmentRepository,
    format_order_number,
    order_number_prefix,
    worker_is_live,
)

__all__ = [
    "FulfillmentBase",
    "Order",
    "OrderItem",
    "OrderStatusLog",
    "Worker",
    "FulfillmentRepository",
    "format_order_number",
    "order_number_prefix",
    "worker_is_live",
]
