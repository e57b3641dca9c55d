"""Human-readable lines for status notifications."""

from fulfillment_core.contracts.envelope import StatusNotification
from fulfillment_core.contracts.types import OrderStatus

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
ETA_FORMAT = "%H:%M:%S"


def format_notification(notification: StatusNotification) -> str:
    timestamp = notification.timestamp.strftime(TIMESTAMP_FORMAT)
    number = notification.order_number
    worker = notification.changed_by

    if notification.new_status == OrderStatus.COOKING.value:
        if notification.estimated_completion is not None:
            eta = notification.estimated_completion.strftime(ETA_FORMAT)
            return f"🍳 [{timestamp}] Order {number} is now being prepared by {worker}. Estimated completion: {eta}"
        return f"🍳 [{timestamp}] Order {number} is now being prepared by {worker}."

    if notification.new_status == OrderStatus.READY.value:
        return f"✅ [{timestamp}] Order {number} is ready for pickup/delivery! Prepared by {worker}."

    if notification.new_status == OrderStatus.COMPLETED.value:
        return f"🎉 [{timestamp}] Order {number} has been completed and delivered! Thank you for your business."

    if notification.new_status == OrderStatus.CANCELLED.value:
        return f"❌ [{timestamp}] Order {number} has been cancelled."

    return (
        f"📋 [{timestamp}] Order {number} status changed from "
        f"'{notification.old_status}' to '{notification.new_status}' by {worker}."
    )
