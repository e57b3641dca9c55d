"""Status notification rendering and relay."""

from fulfillment_core.notifications.relay import NotificationRelay
from fulfillment_core.notifications.render import format_notification

__all__ = ["NotificationRelay", "format_notification"]
