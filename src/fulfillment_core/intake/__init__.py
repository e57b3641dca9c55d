"""Order intake - validation, numbering and submission."""

from fulfillment_core.intake.sequence import OrderNumberSequence
from fulfillment_core.intake.service import OrderIntakeService, OrderReceipt, compute_total, priority_for
from fulfillment_core.intake.validation import OrderItemRequest, OrderRequest, validate_order_request

__all__ = [
    "OrderNumberSequence",
    "OrderIntakeService",
    "OrderReceipt",
    "compute_total",
    "priority_for",
    "OrderItemRequest",
    "OrderRequest",
    "validate_order_request",
]
