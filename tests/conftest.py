"""
Pytest fixtures.

Unit tests run against an in-memory SQLite database and an in-memory
publisher; nothing here needs PostgreSQL or RabbitMQ.
"""

import json
import os
from types import SimpleNamespace

os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from kitchen_base.amqp import PublishError
from kitchen_base.settings import Settings
from fulfillment_core.contracts.envelope import StatusNotification, WorkMessage
from fulfillment_core.intake.service import OrderIntakeService
from fulfillment_core.intake.validation import OrderRequest
from fulfillment_core.messaging.consumer import Delivery
from fulfillment_core.messaging.publishers import NotificationPublisher, WorkPublisher
from fulfillment_core.persistence.models import FulfillmentBase


class FakePublisher:
    """Records published messages instead of talking to RabbitMQ."""

    def __init__(self):
        self.published = []
        self.fail = False
        self.closed = False

    def publish(self, exchange, routing_key, body, persistent=True, priority=None):
        if self.fail:
            raise PublishError(f"Failed to publish to {exchange}")
        self.published.append(
            {
                "exchange": exchange,
                "routing_key": routing_key,
                "body": json.loads(json.dumps(body, default=str)),
                "persistent": persistent,
                "priority": priority,
            }
        )

    def close(self):
        self.closed = True


class FakeChannel:
    """Minimal stand-in for a pika BlockingChannel."""

    def __init__(self, messages=None):
        self.calls = []
        self.acked = []
        self.nacked = []
        self.published = []
        self.messages = list(messages or [])
        self.is_open = True
        self.consumer_tags = []
        self.auto_delete = {}

    def exchange_declare(self, exchange, exchange_type, durable):
        self.calls.append(("exchange_declare", exchange, exchange_type, durable))

    def queue_declare(self, queue, durable, arguments=None, auto_delete=False):
        self.calls.append(("queue_declare", queue, durable, arguments))
        self.auto_delete[queue] = auto_delete

    def queue_bind(self, queue, exchange, routing_key):
        self.calls.append(("queue_bind", queue, exchange, routing_key))

    def basic_ack(self, delivery_tag):
        self.acked.append(delivery_tag)

    def basic_nack(self, delivery_tag, requeue=True):
        self.nacked.append((delivery_tag, requeue))

    def basic_publish(self, exchange, routing_key, body, properties=None):
        self.published.append({"exchange": exchange, "routing_key": routing_key, "body": body, "properties": properties})

    def basic_get(self, queue, auto_ack=False):
        if not self.messages:
            return None, None, None
        return self.messages.pop(0)


class FakeConnection:
    def __init__(self):
        self.is_open = True
        self.callbacks = []

    def close(self):
        self.is_open = False

    def add_callback_threadsafe(self, callback):
        self.callbacks.append(callback)


class ScriptedChannel(FakeChannel):
    """Delivers a fixed list of (routing_key, body) messages, then returns."""

    def __init__(self, deliveries=(), error=None):
        super().__init__()
        self.deliveries = list(deliveries)
        self.error = error
        self.prefetch = None
        self.callbacks = {}
        self.cancelled = []

    def basic_qos(self, prefetch_count):
        self.prefetch = prefetch_count

    def basic_consume(self, queue, on_message_callback, auto_ack, consumer_tag=None):
        tag = consumer_tag or f"ctag-{queue}"
        self.callbacks[queue] = on_message_callback
        self.consumer_tags.append(tag)

    def basic_cancel(self, consumer_tag):
        self.cancelled.append(consumer_tag)
        self.consumer_tags.remove(consumer_tag)

    def start_consuming(self):
        if self.error is not None:
            raise self.error
        for tag, (queue, routing_key, body) in enumerate(self.deliveries, start=1):
            method = SimpleNamespace(routing_key=routing_key, delivery_tag=tag, redelivered=False)
            properties = SimpleNamespace(headers=None, message_id=None)
            self.callbacks[queue](self, method, properties, body)

    def stop_consuming(self):
        pass


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        PREP_TIME_DINE_IN=8.0,
        PREP_TIME_TAKEOUT=10.0,
        PREP_TIME_DELIVERY=12.0,
        NOTIFICATION_GROUP="",
        HEARTBEAT_INTERVAL=30,
        MESSAGE_DEADLINE_SECONDS=30.0,
        MAX_REJECTIONS=3,
        MAX_CONCURRENT_ORDERS=5,
        REQUEST_DEADLINE_SECONDS=5.0,
        ORDER_NUMBER_RETRIES=5,
        LOG_FORMAT="text",
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    FulfillmentBase.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def fake_publisher():
    return FakePublisher()


@pytest.fixture
def intake(session_factory, fake_publisher, settings):
    return OrderIntakeService(session_factory, WorkPublisher(fake_publisher), settings=settings)


@pytest.fixture
def notifier(fake_publisher):
    return NotificationPublisher(fake_publisher)


@pytest.fixture
def jane_smith_request():
    return OrderRequest.from_dict(
        {
            "customer_name": "Jane Smith",
            "order_type": "delivery",
            "delivery_address": "123 Main Street",
            "items": [{"name": "Pizza", "quantity": 2, "price": 10.00}],
        }
    )


def make_delivery(message: WorkMessage | dict | bytes, queue: str = "kitchen_queue", tag: int = 1) -> Delivery:
    """Wrap a work message as a broker delivery."""
    if isinstance(message, WorkMessage):
        routing_key = message.routing_key
        body = json.dumps(message.to_dict()).encode()
    elif isinstance(message, dict):
        routing_key = f"kitchen.{message.get('order_type')}.{message.get('priority', 1)}"
        body = json.dumps(message).encode()
    else:
        routing_key = "kitchen.unknown.1"
        body = message
    return Delivery(body=body, routing_key=routing_key, queue=queue, delivery_tag=tag)


def published_notifications(fake_publisher: FakePublisher) -> list[StatusNotification]:
    return [
        StatusNotification.from_dict(p["body"])
        for p in fake_publisher.published
        if p["exchange"] == "notifications_fanout"
    ]
