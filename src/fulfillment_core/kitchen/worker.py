"""
Kitchen worker.

Handles work messages from the kitchen queues. For each order:

1. Parse the message; reject (requeue) order types outside the worker's
   specialization so a capable worker can pick it up.
2. Claim the order: received -> cooking, owned by this worker.
3. Broadcast a 'cooking' notification with the estimated completion time.
4. Hold for the order type's preparation time.
5. Finish the order: cooking -> ready, bump the worker's processed counter.
6. Broadcast a 'ready' notification.

Delivery is at-least-once, so every step tolerates redelivery: the claim and
the ready transition are conditional updates, an order already past
'cooking' is acknowledged without side effects, and an order held by
another live worker is requeued until that worker finishes or goes quiet.
A worker that fails after claiming releases its hold before requeueing.
"""

import logging
import threading
import time
from collections import OrderedDict
from datetime import timedelta
from enum import Enum
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from kitchen_base.amqp import BrokerUnavailable, PublishError
from kitchen_base.settings import Settings, get_settings
from fulfillment_core.contracts.envelope import EnvelopeError, StatusNotification, WorkMessage
from fulfillment_core.contracts.types import HandlerOutcome, OrderStatus, OrderType
from fulfillment_core.errors import Deadline, DeadlineExceeded
from fulfillment_core.messaging.consumer import Delivery
from fulfillment_core.messaging.publishers import NotificationPublisher
from fulfillment_core.persistence.models import Order
from fulfillment_core.persistence.repo import FulfillmentRepository
from fulfillment_core.timing import prep_duration, utcnow

logger = logging.getLogger(__name__)

GENERAL_WORKER_TYPE = "general"
MAX_TRACKED_REJECTIONS = 1000


class Claim(Enum):
    """What a worker does with a delivered order after looking at its row."""

    CLAIMED = "claimed"  # received -> cooking by this worker
    RESUMED = "resumed"  # already cooking, now held by this worker
    BUSY = "busy"  # held by another live worker; requeue
    SKIP = "skip"  # past cooking; ack


def worker_type_label(order_types: list[OrderType]) -> str:
    """'general' for an unrestricted worker, else the comma-joined types."""
    if not order_types:
        return GENERAL_WORKER_TYPE
    return ",".join(str(t) for t in order_types)


class KitchenWorker:
    """
    One named kitchen worker.

    The handler runs on the consumer thread; the heartbeat runs on its own
    thread with its own sessions.
    """

    def __init__(
        self,
        name: str,
        session_factory: sessionmaker | Callable[[], Session],
        notifier: NotificationPublisher,
        order_types: list[OrderType] | None = None,
        heartbeat_interval: int | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or get_settings()
        self.name = name
        self.session_factory = session_factory
        self.notifier = notifier
        self.order_types = list(order_types or [])
        self.heartbeat_interval = heartbeat_interval or self.settings.HEARTBEAT_INTERVAL
        self.sleep = sleep
        self._rejections: OrderedDict[str, int] = OrderedDict()
        self._heartbeat_thread: threading.Thread | None = None

    @property
    def type_label(self) -> str:
        return worker_type_label(self.order_types)

    @property
    def liveness_window(self) -> timedelta:
        return timedelta(seconds=2 * self.heartbeat_interval)

    def can_handle(self, order_type: OrderType) -> bool:
        return not self.order_types or order_type in self.order_types

    # --- Lifecycle ---

    def register(self) -> None:
        """
        Mark this worker online.

        Raises:
            WorkerAlreadyOnline: if a live worker already holds the name
        """
        db = self.session_factory()
        try:
            FulfillmentRepository(db).register_worker(self.name, self.type_label, self.liveness_window)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        logger.info(
            f"Worker {self.name} registered",
            extra={"worker_name": self.name, "worker_type": self.type_label},
        )

    def heartbeat(self) -> None:
        db = self.session_factory()
        try:
            FulfillmentRepository(db).heartbeat(self.name)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def start_heartbeat(self, stop_event: threading.Event) -> threading.Thread:
        """Send heartbeats every heartbeat_interval seconds until stop_event is set."""

        def heartbeat_loop():
            while not stop_event.wait(self.heartbeat_interval):
                try:
                    self.heartbeat()
                    logger.debug("Heartbeat sent", extra={"worker_name": self.name})
                except SQLAlchemyError as e:
                    logger.error(f"Heartbeat failed: {e}", extra={"worker_name": self.name}, exc_info=True)

        thread = threading.Thread(target=heartbeat_loop, name=f"heartbeat-{self.name}", daemon=True)
        thread.start()
        self._heartbeat_thread = thread
        return thread

    def mark_offline(self) -> None:
        db = self.session_factory()
        try:
            FulfillmentRepository(db).mark_offline(self.name)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        logger.info(f"Worker {self.name} marked offline", extra={"worker_name": self.name})

    # --- Message handling ---

    def handle(self, delivery: Delivery) -> HandlerOutcome:
        """Process one work message and report how the broker should settle it."""
        try:
            message = WorkMessage.from_body(delivery.body)
        except EnvelopeError as e:
            logger.error(
                f"Discarding unparseable work message: {e}",
                extra={"queue": delivery.queue, "routing_key": delivery.routing_key},
            )
            return HandlerOutcome.PERMANENT_FAILURE

        try:
            order_type = OrderType(message.order_type)
        except ValueError:
            logger.error(
                f"Discarding order {message.order_number} with unknown type {message.order_type!r}",
                extra={"order_number": message.order_number},
            )
            return HandlerOutcome.PERMANENT_FAILURE

        if not self.can_handle(order_type):
            return self._reject(message)

        prep = prep_duration(order_type, self.settings)
        deadline = Deadline(self.settings.MESSAGE_DEADLINE_SECONDS + prep.total_seconds())

        logger.debug(
            f"Processing order {message.order_number}",
            extra={"order_number": message.order_number, "order_type": str(order_type), "priority": message.priority},
        )

        try:
            return self._process(message, prep, deadline)
        except DeadlineExceeded as e:
            logger.warning(f"{e}, requeueing", extra={"order_number": message.order_number})
            return HandlerOutcome.RETRYABLE_FAILURE
        except SQLAlchemyError as e:
            logger.error(
                f"Database error while processing order {message.order_number}: {e}",
                extra={"order_number": message.order_number},
                exc_info=True,
            )
            return HandlerOutcome.RETRYABLE_FAILURE

    def _reject(self, message: WorkMessage) -> HandlerOutcome:
        count = self._rejections.pop(message.order_number, 0) + 1
        if count >= self.settings.MAX_REJECTIONS:
            logger.warning(
                f"Order {message.order_number} rejected {count} times, dead-lettering",
                extra={"order_number": message.order_number, "order_type": message.order_type},
            )
            return HandlerOutcome.PERMANENT_FAILURE

        self._rejections[message.order_number] = count
        while len(self._rejections) > MAX_TRACKED_REJECTIONS:
            self._rejections.popitem(last=False)

        logger.debug(
            f"Worker {self.name} cannot handle order type {message.order_type}",
            extra={"order_number": message.order_number, "order_type": message.order_type, "rejections": count},
        )
        return HandlerOutcome.RETRYABLE_FAILURE

    def _process(self, message: WorkMessage, prep: timedelta, deadline: Deadline) -> HandlerOutcome:
        deadline.check(f"Order {message.order_number}")

        db = self.session_factory()
        try:
            repo = FulfillmentRepository(db)
            order = repo.get_order(message.order_number)
            if order is None:
                logger.error(
                    f"Order {message.order_number} does not exist, dead-lettering",
                    extra={"order_number": message.order_number},
                )
                return HandlerOutcome.PERMANENT_FAILURE
            claim = self._claim(repo, order)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        if claim is Claim.BUSY:
            return HandlerOutcome.RETRYABLE_FAILURE
        if claim is Claim.SKIP:
            return HandlerOutcome.COMPLETED

        try:
            return self._cook(message, prep, deadline, fresh=claim is Claim.CLAIMED)
        except (DeadlineExceeded, SQLAlchemyError):
            self._release(message.order_number)
            raise

    def _cook(self, message: WorkMessage, prep: timedelta, deadline: Deadline, fresh: bool) -> HandlerOutcome:
        estimated_completion = utcnow() + prep
        if fresh:
            self._notify(message.order_number, OrderStatus.RECEIVED, OrderStatus.COOKING, estimated_completion)

        logger.debug(
            f"Cooking order {message.order_number} for {prep.total_seconds():.0f}s",
            extra={"order_number": message.order_number, "estimated_completion": estimated_completion.isoformat()},
        )
        self.sleep(prep.total_seconds())
        deadline.check(f"Order {message.order_number}")

        db = self.session_factory()
        try:
            repo = FulfillmentRepository(db)
            order = repo.get_order(message.order_number)
            finished = order is not None and repo.mark_ready(order, self.name)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        if not finished:
            logger.warning(
                f"Order {message.order_number} is no longer held by {self.name}, not marking ready",
                extra={"order_number": message.order_number},
            )
            return HandlerOutcome.COMPLETED

        self._notify(message.order_number, OrderStatus.COOKING, OrderStatus.READY)
        logger.info(
            f"Order {message.order_number} ready",
            extra={"order_number": message.order_number, "worker_name": self.name},
        )
        return HandlerOutcome.COMPLETED

    def _release(self, order_number: str) -> None:
        """Give up a claimed order after a failed finish so the redelivery can go to any worker."""
        db = self.session_factory()
        try:
            released = FulfillmentRepository(db).release_order(order_number, self.name)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(
                f"Failed to release order {order_number}: {e}",
                extra={"order_number": order_number, "worker_name": self.name},
            )
            return
        finally:
            db.close()
        if released:
            logger.info(
                f"Worker {self.name} released order {order_number}",
                extra={"order_number": order_number, "worker_name": self.name},
            )

    def _claim(self, repo: FulfillmentRepository, order: Order) -> Claim:
        """Decide what to do with a delivered order."""
        if order.status == OrderStatus.RECEIVED.value:
            if repo.claim_for_cooking(order, self.name):
                return Claim.CLAIMED
            repo.db.refresh(order)

        if order.status == OrderStatus.COOKING.value:
            owner = order.processed_by
            if owner == self.name:
                logger.info(
                    f"Resuming order {order.number}",
                    extra={"order_number": order.number},
                )
                return Claim.RESUMED
            if repo.is_worker_live(owner, self.liveness_window):
                logger.info(
                    f"Order {order.number} is being cooked by {owner}, requeueing",
                    extra={"order_number": order.number, "processed_by": owner},
                )
                return Claim.BUSY
            if repo.take_over(order, self.name, owner):
                logger.warning(
                    f"Took over order {order.number} from unresponsive worker {owner}",
                    extra={"order_number": order.number, "previous_worker": owner},
                )
                return Claim.RESUMED
            return Claim.BUSY

        logger.info(
            f"Order {order.number} already {order.status}, skipping",
            extra={"order_number": order.number, "status": order.status},
        )
        return Claim.SKIP

    def _notify(
        self,
        order_number: str,
        old_status: OrderStatus,
        new_status: OrderStatus,
        estimated_completion=None,
    ) -> None:
        notification = StatusNotification(
            order_number=order_number,
            old_status=old_status.value,
            new_status=new_status.value,
            changed_by=self.name,
            timestamp=utcnow(),
            estimated_completion=estimated_completion,
        )
        try:
            self.notifier.publish(notification)
        except (PublishError, BrokerUnavailable) as e:
            logger.error(
                f"Failed to publish {new_status} notification for {order_number}: {e}",
                extra={"order_number": order_number},
            )
