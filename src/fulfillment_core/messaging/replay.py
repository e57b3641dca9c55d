"""
Dead-letter replay.

Moves work messages from the dead-letter queue back onto the work exchange,
using each message's own routing key (kitchen.<type>.<priority>). Bodies
that are not valid work messages are left in the queue.
"""

import logging
from dataclasses import dataclass, field

import pika

from fulfillment_core.contracts.envelope import EnvelopeError, WorkMessage
from fulfillment_core.messaging.topology import DEAD_LETTER_QUEUE, WORK_EXCHANGE

logger = logging.getLogger(__name__)


@dataclass
class ReplayResult:
    replayed: list[str] = field(default_factory=list)
    skipped: int = 0


def replay_dead_letters(channel, limit: int = 10, queue: str = DEAD_LETTER_QUEUE) -> ReplayResult:
    """
    Republish up to limit dead-lettered work messages.

    Skipped messages stay unacked and return to the queue when the caller
    closes the channel.
    """
    result = ReplayResult()

    for _ in range(limit):
        method, properties, body = channel.basic_get(queue=queue, auto_ack=False)
        if method is None:
            break

        try:
            message = WorkMessage.from_body(body)
        except EnvelopeError as e:
            logger.warning(f"Leaving unparseable dead letter in {queue}: {e}")
            result.skipped += 1
            continue

        channel.basic_publish(
            exchange=WORK_EXCHANGE,
            routing_key=message.routing_key,
            body=body,
            properties=pika.BasicProperties(
                content_type="application/json",
                delivery_mode=2,
                priority=message.priority,
            ),
        )
        channel.basic_ack(delivery_tag=method.delivery_tag)
        result.replayed.append(message.order_number)
        logger.info(
            f"Replayed dead-lettered order {message.order_number}",
            extra={"order_number": message.order_number, "routing_key": message.routing_key},
        )

    return result
