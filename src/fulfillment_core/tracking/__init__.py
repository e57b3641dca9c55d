"""Order tracking."""

from fulfillment_core.tracking.service import TrackingService, check_order_number

__all__ = ["TrackingService", "check_order_number"]
