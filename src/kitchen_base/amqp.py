"""
RabbitMQ utilities for kitchen_base.

Low-level helpers around pika's BlockingConnection: connecting with retries,
declaring a topology (exchanges, queues, bindings) and publishing JSON
bodies. Everything here is safe to call repeatedly; declarations are
idempotent, so a reconnect simply re-declares the whole topology.
"""

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import pika
from pika.adapters.blocking_connection import BlockingChannel
from pika.exceptions import AMQPError

from kitchen_base.settings import get_settings

logger = logging.getLogger(__name__)


class BrokerUnavailable(Exception):
    """Raised when the broker cannot be reached after all retries."""


class PublishError(Exception):
    """Raised when a message could not be published."""


@dataclass
class ExchangeSpec:
    """An exchange to declare."""

    name: str
    exchange_type: str
    durable: bool = True


@dataclass
class QueueSpec:
    """
    A queue to declare and bind.

    Attributes:
        name: Queue name
        bindings: (exchange, routing_key) pairs
        arguments: x-arguments (TTL, dead-letter exchange, ...)
        auto_delete: Drop the queue once its last consumer goes away
    """

    name: str
    bindings: list[tuple[str, str]] = field(default_factory=list)
    arguments: dict[str, Any] = field(default_factory=dict)
    durable: bool = True
    auto_delete: bool = False


@dataclass
class Topology:
    """A full set of exchanges and queues a service depends on."""

    exchanges: list[ExchangeSpec] = field(default_factory=list)
    queues: list[QueueSpec] = field(default_factory=list)


def declare_topology(channel: BlockingChannel, topology: Topology) -> None:
    """
    Declare every exchange, queue and binding in the topology.

    Safe to call multiple times.
    """
    for exchange in topology.exchanges:
        channel.exchange_declare(
            exchange=exchange.name,
            exchange_type=exchange.exchange_type,
            durable=exchange.durable,
        )

    for queue in topology.queues:
        channel.queue_declare(
            queue=queue.name,
            durable=queue.durable,
            auto_delete=queue.auto_delete,
            arguments=queue.arguments or None,
        )
        for exchange_name, routing_key in queue.bindings:
            channel.queue_bind(queue=queue.name, exchange=exchange_name, routing_key=routing_key)

    logger.debug(
        "Declared broker topology",
        extra={
            "exchanges": [e.name for e in topology.exchanges],
            "queues": [q.name for q in topology.queues],
        },
    )


def connection_parameters(url: str | None = None) -> pika.URLParameters:
    """Build connection parameters from RABBITMQ_URL."""
    settings = get_settings()
    params = pika.URLParameters(url or settings.RABBITMQ_URL)
    params.heartbeat = settings.RABBITMQ_HEARTBEAT
    params.blocked_connection_timeout = 30
    params.socket_timeout = 10
    return params


def connect(
    topology: Topology,
    url: str | None = None,
    attempts: int | None = None,
    retry_delay: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[pika.BlockingConnection, BlockingChannel]:
    """
    Open a connection and channel, then declare the topology.

    Retries with a linearly increasing backoff (retry_delay * attempt).

    Raises:
        BrokerUnavailable: after all attempts failed
    """
    settings = get_settings()
    attempts = attempts or settings.RABBITMQ_CONNECT_RETRIES
    retry_delay = settings.RABBITMQ_RETRY_DELAY if retry_delay is None else retry_delay

    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        connection = None
        try:
            connection = pika.BlockingConnection(connection_parameters(url))
            channel = connection.channel()
            declare_topology(channel, topology)
            logger.info("Connected to RabbitMQ", extra={"attempt": attempt})
            return connection, channel
        except AMQPError as e:
            last_error = e
            close_quietly(connection)
            if attempt < attempts:
                wait = retry_delay * attempt
                logger.warning(
                    f"Failed to connect to RabbitMQ, retrying in {wait:.0f}s: {e!r}",
                    extra={"attempt": attempt},
                )
                sleep(wait)

    logger.error(f"Failed to connect to RabbitMQ after {attempts} attempts: {last_error!r}")
    raise BrokerUnavailable(f"RabbitMQ unreachable after {attempts} attempts") from last_error


def close_quietly(connection: pika.BlockingConnection | None) -> None:
    """Close a connection, ignoring errors from an already-dead socket."""
    if connection is None:
        return
    try:
        if connection.is_open:
            connection.close()
    except AMQPError as e:
        logger.debug(f"Ignoring error while closing connection: {e!r}")


def encode_body(data: dict[str, Any]) -> bytes:
    """Serialize a message body to JSON bytes."""
    return json.dumps(data, default=str).encode("utf-8")


class AmqpPublisher:
    """
    Thread-safe publisher over a single lazily-opened channel.

    FastAPI runs sync endpoints in a thread pool while pika channels are not
    thread-safe, so every publish holds the same lock. A failed publish tears
    the connection down and retries once on a fresh one.
    """

    def __init__(
        self,
        topology: Topology,
        url: str | None = None,
        connect_fn: Callable[..., tuple[Any, Any]] = connect,
    ):
        self.topology = topology
        self.url = url
        self._connect = connect_fn
        self._lock = threading.Lock()
        self._connection = None
        self._channel = None

    def publish(
        self,
        exchange: str,
        routing_key: str,
        body: dict[str, Any],
        persistent: bool = True,
        priority: int | None = None,
    ) -> None:
        """
        Publish a JSON message.

        Raises:
            PublishError: if the message could not be published after a reconnect
        """
        payload = encode_body(body)
        properties = pika.BasicProperties(
            content_type="application/json",
            delivery_mode=2 if persistent else 1,
            priority=priority,
            timestamp=int(time.time()),
        )

        with self._lock:
            last_error: Exception | None = None
            for attempt in (1, 2):
                try:
                    channel = self._ensure_channel()
                    channel.basic_publish(
                        exchange=exchange,
                        routing_key=routing_key,
                        body=payload,
                        properties=properties,
                    )
                    logger.debug(
                        f"Published to {exchange}",
                        extra={
                            "exchange": exchange,
                            "routing_key": routing_key,
                            "message_size": len(payload),
                        },
                    )
                    return
                except (AMQPError, BrokerUnavailable) as e:
                    last_error = e
                    self._teardown()
                    logger.warning(
                        f"Publish to {exchange} failed (attempt {attempt}): {e!r}",
                        extra={"exchange": exchange, "routing_key": routing_key},
                    )

        raise PublishError(f"Failed to publish to {exchange} with key '{routing_key}'") from last_error

    def connect(self, attempts: int | None = None) -> None:
        """
        Open the channel now instead of on the first publish.

        Raises:
            BrokerUnavailable: if the broker cannot be reached
        """
        with self._lock:
            self._ensure_channel(attempts)

    def close(self) -> None:
        with self._lock:
            self._teardown()

    def _ensure_channel(self, attempts: int | None = 1):
        if self._channel is None or not self._channel.is_open:
            self._teardown()
            self._connection, self._channel = self._connect(self.topology, url=self.url, attempts=attempts)
        return self._channel

    def _teardown(self) -> None:
        close_quietly(self._connection)
        self._connection = None
        self._channel = None
