"""
Notification relay.

Consumes status notifications from its own fanout queue and shows them on
the console.
"""

import logging

from rich.console import Console

from fulfillment_core.contracts.envelope import EnvelopeError, StatusNotification
from fulfillment_core.contracts.types import HandlerOutcome
from fulfillment_core.messaging.consumer import Delivery
from fulfillment_core.notifications.render import TIMESTAMP_FORMAT, format_notification

logger = logging.getLogger(__name__)


class NotificationRelay:
    def __init__(self, console: Console | None = None):
        self.console = console or Console(highlight=False)

    def handle(self, delivery: Delivery) -> HandlerOutcome:
        try:
            notification = StatusNotification.from_body(delivery.body)
        except EnvelopeError as e:
            # Redelivering will not make it parseable
            logger.error(f"Dropping unparseable notification: {e}", extra={"queue": delivery.queue})
            return HandlerOutcome.PERMANENT_FAILURE

        self.console.print(format_notification(notification), markup=False)
        logger.info(
            "notification_displayed",
            extra={
                "order_number": notification.order_number,
                "old_status": notification.old_status,
                "new_status": notification.new_status,
                "changed_by": notification.changed_by,
                "notification_timestamp": notification.timestamp.strftime(TIMESTAMP_FORMAT),
            },
        )
        return HandlerOutcome.COMPLETED
