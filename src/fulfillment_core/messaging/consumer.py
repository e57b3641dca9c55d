"""
Blocking queue consumer.

Runs a pika BlockingConnection consumption loop over one or more queues and
turns each delivery into a call to a handler. The handler returns a
HandlerOutcome which is mapped to the broker call:

- COMPLETED          -> basic_ack
- RETRYABLE_FAILURE  -> basic_nack(requeue=True)
- PERMANENT_FAILURE  -> basic_nack(requeue=False), dead-lettered when the
                        queue has a dead-letter exchange

An exception escaping the handler counts as a retryable failure. Losing the
connection or channel tears everything down, reconnects, re-declares the
topology and resumes; unacked deliveries are redelivered by the broker.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

from pika.exceptions import AMQPError

from kitchen_base.amqp import Topology, close_quietly, connect
from kitchen_base.logging import request_id_var
from kitchen_base.settings import get_settings
from fulfillment_core.contracts.types import HandlerOutcome

logger = logging.getLogger(__name__)


@dataclass
class Delivery:
    """One message as seen by a handler."""

    body: bytes
    routing_key: str
    queue: str
    delivery_tag: int
    redelivered: bool = False
    headers: dict[str, Any] = field(default_factory=dict)
    message_id: str | None = None


Handler = Callable[[Delivery], HandlerOutcome]


class QueueConsumer:
    """
    Consume from queues until stop() is called.

    stop() may be called from a signal handler or any other thread; the
    in-flight handler call is allowed to finish and be acked first.
    """

    def __init__(
        self,
        topology: Topology,
        queues: list[str],
        handler: Handler,
        prefetch: int = 1,
        consumer_tag: str | None = None,
        connect_fn: Callable[..., tuple[Any, Any]] = connect,
        stop_event: threading.Event | None = None,
    ):
        self.topology = topology
        self.queues = queues
        self.handler = handler
        self.prefetch = prefetch
        self.consumer_tag = consumer_tag
        self._connect = connect_fn
        self.stop_event = stop_event or threading.Event()
        self._connection = None
        self._channel = None

    def run(self) -> None:
        """
        Consume until stopped.

        Raises:
            BrokerUnavailable: if the broker cannot be reached after all retries
        """
        settings = get_settings()
        while not self.stop_event.is_set():
            self._connection, self._channel = self._connect(self.topology)
            try:
                self._consume()
            except AMQPError as e:
                if self.stop_event.is_set():
                    break
                logger.warning(
                    f"Lost broker connection, reconnecting: {e!r}",
                    extra={"queues": self.queues},
                )
                self._teardown()
                self.stop_event.wait(settings.RABBITMQ_RETRY_DELAY)
                continue
            break

        self._shutdown()

    def stop(self) -> None:
        """Request a graceful stop. Safe to call from signal handlers."""
        self.stop_event.set()
        connection, channel = self._connection, self._channel
        if connection is None or channel is None:
            return
        try:
            connection.add_callback_threadsafe(channel.stop_consuming)
        except AMQPError as e:
            logger.debug(f"Could not schedule stop_consuming: {e!r}")

    def _consume(self) -> None:
        channel = self._channel
        channel.basic_qos(prefetch_count=self.prefetch)
        for index, queue in enumerate(self.queues):
            tag = f"{self.consumer_tag}-{index}" if self.consumer_tag else None
            channel.basic_consume(
                queue=queue,
                on_message_callback=self._make_callback(queue),
                auto_ack=False,
                consumer_tag=tag,
            )

        logger.info(
            "Started consuming",
            extra={"queues": self.queues, "prefetch": self.prefetch},
        )
        if self.stop_event.is_set():
            return
        channel.start_consuming()

    def _make_callback(self, queue: str):
        def on_message(channel, method, properties, body):
            delivery = Delivery(
                body=body,
                routing_key=method.routing_key,
                queue=queue,
                delivery_tag=method.delivery_tag,
                redelivered=bool(method.redelivered),
                headers=dict(getattr(properties, "headers", None) or {}),
                message_id=getattr(properties, "message_id", None),
            )
            outcome = self.dispatch(delivery)
            self._settle(channel, delivery, outcome)

        return on_message

    def dispatch(self, delivery: Delivery) -> HandlerOutcome:
        """Run the handler and turn exceptions into a retryable outcome."""
        token = request_id_var.set(delivery.message_id or f"{delivery.queue}:{delivery.delivery_tag}")
        try:
            outcome = self.handler(delivery)
        except Exception as e:
            logger.error(
                f"Unhandled error processing message from {delivery.queue}: {e}",
                extra={"queue": delivery.queue, "routing_key": delivery.routing_key},
                exc_info=True,
            )
            outcome = HandlerOutcome.RETRYABLE_FAILURE
        finally:
            request_id_var.reset(token)
        return outcome

    def _settle(self, channel, delivery: Delivery, outcome: HandlerOutcome) -> None:
        if outcome == HandlerOutcome.COMPLETED:
            channel.basic_ack(delivery_tag=delivery.delivery_tag)
        elif outcome == HandlerOutcome.RETRYABLE_FAILURE:
            channel.basic_nack(delivery_tag=delivery.delivery_tag, requeue=True)
        else:
            channel.basic_nack(delivery_tag=delivery.delivery_tag, requeue=False)
            logger.warning(
                "Message rejected without requeue",
                extra={"queue": delivery.queue, "routing_key": delivery.routing_key},
            )

    def _shutdown(self) -> None:
        channel = self._channel
        if channel is not None:
            try:
                if channel.is_open:
                    for tag in list(channel.consumer_tags):
                        channel.basic_cancel(tag)
            except AMQPError as e:
                logger.debug(f"Ignoring error while cancelling consumers: {e!r}")
        self._teardown()
        logger.info("Stopped consuming", extra={"queues": self.queues})

    def _teardown(self) -> None:
        close_quietly(self._connection)
        self._connection = None
        self._channel = None
