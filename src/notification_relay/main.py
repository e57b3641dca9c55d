"""
Notification Relay Service

Subscribes to the notifications fanout exchange and prints every status
change to the console. Without a group each relay reads its own queue;
relays started with the same group share one queue.
"""

import logging
import signal

from kitchen_base.logging import setup_logging
from kitchen_base.settings import get_settings
from fulfillment_core.messaging.consumer import QueueConsumer
from fulfillment_core.messaging.topology import notification_topology
from fulfillment_core.notifications.relay import NotificationRelay

logger = logging.getLogger(__name__)


def run(group: str | None = None, prefetch: int = 10) -> None:
    """
    Relay notifications until a shutdown signal arrives.

    Raises:
        BrokerUnavailable: if RabbitMQ cannot be reached
    """
    setup_logging("notification-subscriber")
    settings = get_settings()
    topology = notification_topology(group, settings)
    queue = topology.queues[0].name

    consumer = QueueConsumer(
        topology,
        [queue],
        NotificationRelay().handle,
        prefetch=prefetch,
    )

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, requesting shutdown...")
        consumer.stop()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    logger.info("Notification subscriber started", extra={"queue": queue})
    consumer.run()
    logger.info("Notification subscriber stopped")
