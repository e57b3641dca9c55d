"""
Order intake.

submit() validates a request, stores the order (order row, item rows and
the initial 'received' log row in one transaction) and then publishes the
work message. The order is the source of truth: a failed publish is logged
and the request still succeeds.
"""

import logging
import threading
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from kitchen_base.amqp import BrokerUnavailable, PublishError
from kitchen_base.settings import Settings, get_settings
from fulfillment_core.contracts.envelope import WorkItem, WorkMessage
from fulfillment_core.contracts.types import OrderStatus
from fulfillment_core.errors import Deadline, IntakeBusy
from fulfillment_core.intake.sequence import OrderNumberSequence
from fulfillment_core.intake.validation import OrderItemRequest, OrderRequest, validate_order_request
from fulfillment_core.messaging.publishers import WorkPublisher
from fulfillment_core.persistence.repo import FulfillmentRepository

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
HIGH_PRIORITY_THRESHOLD = Decimal("100")
MEDIUM_PRIORITY_THRESHOLD = Decimal("50")


def compute_total(items: list[OrderItemRequest]) -> Decimal:
    """Sum of price x quantity, rounded to cents."""
    total = sum((item.price * item.quantity for item in items), Decimal("0"))
    return total.quantize(CENTS, rounding=ROUND_HALF_UP)


def priority_for(total: Decimal) -> int:
    """10 above 100, 5 from 50 to 100 inclusive, 1 below 50."""
    if total > HIGH_PRIORITY_THRESHOLD:
        return 10
    if total >= MEDIUM_PRIORITY_THRESHOLD:
        return 5
    return 1


@dataclass
class OrderReceipt:
    order_number: str
    status: str
    total_amount: Decimal

    def to_dict(self) -> dict:
        return {
            "order_number": self.order_number,
            "status": self.status,
            "total_amount": float(self.total_amount),
        }


class OrderIntakeService:
    """
    Accepts orders.

    At most max_concurrent submissions run at once; callers beyond that wait
    for a slot until the request deadline and then get IntakeBusy.
    """

    def __init__(
        self,
        session_factory: sessionmaker | Callable[[], Session],
        publisher: WorkPublisher,
        sequence: OrderNumberSequence | None = None,
        max_concurrent: int | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.session_factory = session_factory
        self.publisher = publisher
        self.sequence = sequence or OrderNumberSequence()
        self.max_concurrent = max_concurrent or self.settings.MAX_CONCURRENT_ORDERS
        self._slots = threading.BoundedSemaphore(self.max_concurrent)

    def submit(self, req: OrderRequest, deadline: Deadline | None = None) -> OrderReceipt:
        """
        Validate, store and publish an order.

        Raises:
            ValidationError: if the request is invalid
            IntakeBusy: if no slot freed up before the deadline
            DeadlineExceeded: if the deadline passed before the order was stored
        """
        validate_order_request(req)
        deadline = deadline or Deadline(self.settings.REQUEST_DEADLINE_SECONDS)

        if not self._slots.acquire(timeout=deadline.remaining()):
            logger.warning("Intake at capacity, rejecting order", extra={"max_concurrent": self.max_concurrent})
            raise IntakeBusy("Too many orders in flight, try again later")
        try:
            return self._submit(req, deadline)
        finally:
            self._slots.release()

    def _submit(self, req: OrderRequest, deadline: Deadline) -> OrderReceipt:
        total = compute_total(req.items)
        priority = priority_for(total)

        order_number = self._store(req, total, priority, deadline)
        logger.info(
            f"Order {order_number} received",
            extra={
                "order_number": order_number,
                "customer_name": req.customer_name,
                "order_type": req.order_type,
                "total_amount": float(total),
                "priority": priority,
            },
        )

        message = WorkMessage(
            order_number=order_number,
            customer_name=req.customer_name,
            order_type=req.order_type,
            items=[WorkItem(name=i.name, quantity=i.quantity, price=i.price) for i in req.items],
            total_amount=total,
            priority=priority,
            table_number=req.table_number,
            delivery_address=req.delivery_address,
        )
        try:
            self.publisher.publish(message)
        except (PublishError, BrokerUnavailable) as e:
            # Stored but not queued; replayable from the store
            logger.error(
                f"order_publish_failed: order {order_number} was stored but not queued: {e}",
                extra={"order_number": order_number, "routing_key": message.routing_key},
                exc_info=True,
            )

        return OrderReceipt(order_number=order_number, status=OrderStatus.RECEIVED.value, total_amount=total)

    def _store(self, req: OrderRequest, total: Decimal, priority: int, deadline: Deadline) -> str:
        """Insert the order, retrying on an order-number collision."""
        attempts = max(self.settings.ORDER_NUMBER_RETRIES, 1)
        items = [{"name": i.name, "quantity": i.quantity, "price": i.price} for i in req.items]

        attempt = 0
        while True:
            attempt += 1
            deadline.check("order intake")
            db = self.session_factory()
            order_number = None
            try:
                repo = FulfillmentRepository(db)
                order_number = self.sequence.next_number(repo)
                repo.create_order(
                    number=order_number,
                    customer_name=req.customer_name,
                    order_type=req.order_type,
                    items=items,
                    total_amount=total,
                    priority=priority,
                    table_number=req.table_number,
                    delivery_address=req.delivery_address or None,
                )
                db.commit()
                return order_number
            except IntegrityError:
                db.rollback()
                if attempt == attempts:
                    logger.error(f"Could not allocate a unique order number after {attempts} attempts")
                    raise
                self.sequence.resync(FulfillmentRepository(db))
            except Exception:
                db.rollback()
                if order_number is not None:
                    self.sequence.release(order_number)
                raise
            finally:
                db.close()
