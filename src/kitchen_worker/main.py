"""
Kitchen Worker Service

Registers a named worker, consumes work messages from its kitchen queues and
cooks orders one at a time (bounded by prefetch).

Shutdown on SIGINT/SIGTERM:
- stop consuming after the in-flight message is settled
- stop the heartbeat thread
- mark the worker offline
- close the broker connection
"""

import logging
import signal
import threading
from typing import Any, Callable

from kitchen_base.amqp import AmqpPublisher, connect
from kitchen_base.db import get_sessionmaker, wait_for_database
from kitchen_base.logging import setup_logging
from kitchen_base.settings import get_settings
from fulfillment_core.contracts.types import OrderType
from fulfillment_core.kitchen.worker import KitchenWorker
from fulfillment_core.messaging.consumer import QueueConsumer
from fulfillment_core.messaging.publishers import NotificationPublisher
from fulfillment_core.messaging.topology import work_topology, worker_queues

logger = logging.getLogger(__name__)


def run(
    worker_name: str,
    order_types: list[OrderType] | None = None,
    heartbeat_interval: int | None = None,
    prefetch: int = 1,
    include_general: bool = False,
    connect_fn: Callable[..., tuple[Any, Any]] = connect,
) -> None:
    """
    Run a kitchen worker until a shutdown signal arrives.

    Raises:
        WorkerAlreadyOnline: if another live worker holds worker_name
        BrokerUnavailable: if RabbitMQ cannot be reached
    """
    setup_logging("kitchen-worker")
    settings = get_settings()
    order_types = order_types or []
    topology = work_topology(settings)

    wait_for_database()

    notifier_connection = AmqpPublisher(topology, connect_fn=connect_fn)
    worker = KitchenWorker(
        worker_name,
        get_sessionmaker(),
        NotificationPublisher(notifier_connection),
        order_types=order_types,
        heartbeat_interval=heartbeat_interval,
        settings=settings,
    )
    worker.register()

    stop_event = threading.Event()
    queues = worker_queues(order_types, include_general=include_general)
    consumer = QueueConsumer(
        topology,
        queues,
        worker.handle,
        prefetch=prefetch,
        consumer_tag=worker_name,
        connect_fn=connect_fn,
        stop_event=stop_event,
    )

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, requesting shutdown...")
        consumer.stop()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    heartbeat_thread = worker.start_heartbeat(stop_event)
    logger.info(
        f"Kitchen worker {worker_name} started",
        extra={
            "worker_name": worker_name,
            "worker_type": worker.type_label,
            "queues": queues,
            "prefetch": prefetch,
            "heartbeat_interval": worker.heartbeat_interval,
        },
    )

    try:
        consumer.run()
    finally:
        stop_event.set()
        heartbeat_thread.join(timeout=5)
        try:
            worker.mark_offline()
        except Exception as e:
            logger.error(f"Failed to mark worker {worker_name} offline: {e}", exc_info=True)
        notifier_connection.close()
        logger.info(f"Kitchen worker {worker_name} stopped")
