"""
Integration Test: Order Pipeline (Intake -> RabbitMQ -> Kitchen Worker -> Notifications)

Verifies the complete flow against real services:
1. Intake stores an order and publishes it to orders_topic
2. The message lands on the type queue and the general queue
3. A kitchen worker cooks it: received -> cooking -> ready
4. Both status changes are broadcast on notifications_fanout
5. Redelivering the duplicate copy from the general queue changes nothing

Requirements:
- PostgreSQL and RabbitMQ running (docker compose up -d db rabbitmq)
- INTEGRATION_DATABASE_URL and INTEGRATION_RABBITMQ_URL set

Run with:
    pytest tests/integration/test_pipeline.py -v
"""

import os
import time

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

from kitchen_base.amqp import AmqpPublisher, close_quietly, connect
from kitchen_base.settings import Settings
from fulfillment_core.contracts.envelope import StatusNotification
from fulfillment_core.intake.service import OrderIntakeService
from fulfillment_core.intake.validation import OrderRequest
from fulfillment_core.kitchen.worker import KitchenWorker
from fulfillment_core.messaging.consumer import Delivery
from fulfillment_core.messaging.publishers import NotificationPublisher, WorkPublisher
from fulfillment_core.messaging.topology import notification_topology, work_topology
from fulfillment_core.migrations import run_migrations
from fulfillment_core.persistence.repo import FulfillmentRepository

DATABASE_URL = os.getenv("INTEGRATION_DATABASE_URL")
RABBITMQ_URL = os.getenv("INTEGRATION_RABBITMQ_URL")
NOTIFICATION_GROUP = "integration"

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        not (DATABASE_URL and RABBITMQ_URL),
        reason="INTEGRATION_DATABASE_URL and INTEGRATION_RABBITMQ_URL not set",
    ),
]


@pytest.fixture(scope="module")
def integration_settings():
    return Settings(
        _env_file=None,
        DATABASE_URL=DATABASE_URL,
        RABBITMQ_URL=RABBITMQ_URL,
        NOTIFICATION_GROUP=NOTIFICATION_GROUP,
        PREP_TIME_DINE_IN=0.1,
        PREP_TIME_TAKEOUT=0.1,
        PREP_TIME_DELIVERY=0.1,
        LOG_FORMAT="text",
    )


@pytest.fixture(scope="module")
def pg_engine(integration_settings):
    """Migrated database engine."""
    run_migrations(DATABASE_URL)
    engine = create_engine(DATABASE_URL)
    yield engine
    engine.dispose()


@pytest.fixture
def pg_session_factory(pg_engine):
    with pg_engine.begin() as conn:
        conn.execute(text("TRUNCATE order_status_log, order_items, orders, workers RESTART IDENTITY CASCADE"))
    return sessionmaker(bind=pg_engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def broker_channel(integration_settings):
    """A channel with the full topology declared and every queue emptied."""
    work = work_topology(integration_settings)
    notifications = notification_topology(NOTIFICATION_GROUP, integration_settings)
    connection, channel = connect(work, url=RABBITMQ_URL, attempts=3)
    notification_connection, _ = connect(notifications, url=RABBITMQ_URL, attempts=3)
    close_quietly(notification_connection)

    for queue in work.queues + notifications.queues:
        channel.queue_purge(queue.name)

    yield channel
    close_quietly(connection)


@pytest.fixture
def amqp_publisher(integration_settings):
    publisher = AmqpPublisher(work_topology(integration_settings), url=RABBITMQ_URL)
    yield publisher
    publisher.close()


def get_delivery(channel, queue, attempts=20):
    for _ in range(attempts):
        method, properties, body = channel.basic_get(queue=queue, auto_ack=True)
        if method is not None:
            break
        time.sleep(0.1)
    assert method is not None, f"no message on {queue}"
    return Delivery(body=body, routing_key=method.routing_key, queue=queue, delivery_tag=method.delivery_tag)


def test_order_flows_to_ready(pg_session_factory, broker_channel, amqp_publisher, integration_settings):
    intake = OrderIntakeService(pg_session_factory, WorkPublisher(amqp_publisher), settings=integration_settings)
    receipt = intake.submit(
        OrderRequest.from_dict(
            {
                "customer_name": "Jane Smith",
                "order_type": "delivery",
                "delivery_address": "123 Main Street",
                "items": [{"name": "Pizza", "quantity": 2, "price": 10.00}],
            }
        )
    )

    worker = KitchenWorker(
        "integration_chef",
        pg_session_factory,
        NotificationPublisher(amqp_publisher),
        settings=integration_settings,
    )
    worker.register()
    try:
        typed = get_delivery(broker_channel, "kitchen_delivery_queue")
        assert typed.routing_key == "kitchen.delivery.1"
        worker.handle(typed)

        # The general queue holds a second copy of the same order
        duplicate = get_delivery(broker_channel, "kitchen_queue")
        worker.handle(duplicate)
    finally:
        worker.mark_offline()

    db = pg_session_factory()
    try:
        repo = FulfillmentRepository(db)
        order = repo.get_order(receipt.order_number)
        assert order.status == "ready"
        assert order.processed_by == "integration_chef"
        assert [h.status for h in repo.get_history(order.id)] == ["received", "cooking", "ready"]
        assert repo.get_worker("integration_chef").orders_processed == 1
    finally:
        db.close()

    notifications = [
        StatusNotification.from_body(get_delivery(broker_channel, "notifications.integration").body)
        for _ in range(2)
    ]
    assert [n.new_status for n in notifications] == ["cooking", "ready"]
    assert all(n.order_number == receipt.order_number for n in notifications)
