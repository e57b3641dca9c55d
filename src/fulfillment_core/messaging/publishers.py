"""
Typed publishers for work messages and status notifications.
"""

import logging
from typing import Protocol

from fulfillment_core.contracts.envelope import StatusNotification, WorkMessage
from fulfillment_core.messaging.topology import NOTIFICATION_EXCHANGE, WORK_EXCHANGE

logger = logging.getLogger(__name__)


class MessagePublisher(Protocol):
    def publish(
        self,
        exchange: str,
        routing_key: str,
        body: dict,
        persistent: bool = True,
        priority: int | None = None,
    ) -> None: ...

    def close(self) -> None: ...


class WorkPublisher:
    """Publishes work messages to the topic exchange."""

    def __init__(self, publisher: MessagePublisher):
        self.publisher = publisher

    def publish(self, message: WorkMessage) -> None:
        """
        Raises:
            PublishError: if the broker did not accept the message
        """
        self.publisher.publish(
            WORK_EXCHANGE,
            message.routing_key,
            message.to_dict(),
            persistent=True,
            priority=message.priority,
        )
        logger.info(
            f"Published order {message.order_number}",
            extra={"order_number": message.order_number, "routing_key": message.routing_key},
        )


class NotificationPublisher:
    """Broadcasts status changes on the fanout exchange (transient)."""

    def __init__(self, publisher: MessagePublisher):
        self.publisher = publisher

    def publish(self, notification: StatusNotification) -> None:
        self.publisher.publish(
            NOTIFICATION_EXCHANGE,
            "",
            notification.to_dict(),
            persistent=False,
        )
        logger.debug(
            f"Published status notification for {notification.order_number}",
            extra={"order_number": notification.order_number, "new_status": notification.new_status},
        )
