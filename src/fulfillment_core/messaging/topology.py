"""
Broker topology for the fulfillment pipeline.

Work:
    orders_topic (topic)
        kitchen.#            -> kitchen_queue            (general workers)
        kitchen.dine_in.*    -> kitchen_dine_in_queue
        kitchen.takeout.*    -> kitchen_takeout_queue
        kitchen.delivery.*   -> kitchen_delivery_queue
    orders_dlx (direct)
        kitchen.dead         -> kitchen_dead_letter_queue

Notifications:
    notifications_fanout (fanout) -> notifications.<group>

A named notification group is a durable queue shared by every consumer
that names it. Without a group each consumer gets its own auto-delete
queue, notifications.<hostname>-<pid>, and sees every notification.

Work queues carry a message TTL and a priority range matching the
published priorities. Unless disabled they dead-letter into orders_dlx so
expired and rejected messages can be replayed.
"""

import os
import socket

from kitchen_base.amqp import ExchangeSpec, QueueSpec, Topology
from kitchen_base.settings import Settings, get_settings
from fulfillment_core.contracts.types import OrderType

WORK_EXCHANGE = "orders_topic"
NOTIFICATION_EXCHANGE = "notifications_fanout"
DEAD_LETTER_EXCHANGE = "orders_dlx"

GENERAL_QUEUE = "kitchen_queue"
DEAD_LETTER_QUEUE = "kitchen_dead_letter_queue"
DEAD_LETTER_ROUTING_KEY = "kitchen.dead"
MAX_PRIORITY = 10


def type_queue_name(order_type: OrderType | str) -> str:
    return f"kitchen_{order_type}_queue"


def notification_queue_name(group: str) -> str:
    return f"notifications.{group}"


def work_queue_arguments(settings: Settings | None = None) -> dict:
    settings = settings or get_settings()
    arguments = {"x-message-ttl": settings.WORK_QUEUE_TTL_MS, "x-max-priority": MAX_PRIORITY}
    if settings.WORK_DEAD_LETTER_ENABLED:
        arguments["x-dead-letter-exchange"] = DEAD_LETTER_EXCHANGE
        arguments["x-dead-letter-routing-key"] = DEAD_LETTER_ROUTING_KEY
    return arguments


def work_topology(settings: Settings | None = None) -> Topology:
    """Exchanges and queues used by intake and kitchen workers."""
    settings = settings or get_settings()
    arguments = work_queue_arguments(settings)

    exchanges = [
        ExchangeSpec(WORK_EXCHANGE, "topic"),
        ExchangeSpec(NOTIFICATION_EXCHANGE, "fanout"),
    ]
    queues = [
        QueueSpec(
            GENERAL_QUEUE,
            bindings=[(WORK_EXCHANGE, settings.GENERAL_QUEUE_BINDING)],
            arguments=dict(arguments),
        )
    ]
    for order_type in OrderType:
        queues.append(
            QueueSpec(
                type_queue_name(order_type),
                bindings=[(WORK_EXCHANGE, f"kitchen.{order_type}.*")],
                arguments=dict(arguments),
            )
        )

    if settings.WORK_DEAD_LETTER_ENABLED:
        exchanges.append(ExchangeSpec(DEAD_LETTER_EXCHANGE, "direct"))
        queues.append(
            QueueSpec(DEAD_LETTER_QUEUE, bindings=[(DEAD_LETTER_EXCHANGE, DEAD_LETTER_ROUTING_KEY)])
        )

    return Topology(exchanges=exchanges, queues=queues)


def instance_group() -> str:
    """A notification group name unique to this process."""
    return f"{socket.gethostname()}-{os.getpid()}"


def notification_topology(group: str | None = None, settings: Settings | None = None) -> Topology:
    """Fanout exchange plus the queue a notification consumer reads from."""
    settings = settings or get_settings()
    group = group or settings.NOTIFICATION_GROUP
    bindings = [(NOTIFICATION_EXCHANGE, "")]
    if group:
        queue = QueueSpec(notification_queue_name(group), bindings=bindings)
    else:
        queue = QueueSpec(
            notification_queue_name(instance_group()),
            bindings=bindings,
            durable=False,
            auto_delete=True,
        )
    return Topology(exchanges=[ExchangeSpec(NOTIFICATION_EXCHANGE, "fanout")], queues=[queue])


def worker_queues(order_types: list[OrderType], include_general: bool = False) -> list[str]:
    """
    Queues a worker consumes from.

    A worker without a specialization serves every type from the general
    queue. A specialized worker consumes its type queues, plus the general
    queue when include_general is set.
    """
    if not order_types:
        return [GENERAL_QUEUE]
    queues = [type_queue_name(order_type) for order_type in order_types]
    if include_general:
        queues.append(GENERAL_QUEUE)
    return queues
