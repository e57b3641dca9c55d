"""
Repository for fulfillment tables.

Every status write is a conditional UPDATE guarded by the expected current
status, paired with exactly one order_status_log row in the same
transaction. Callers own the transaction: methods flush, never commit.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fulfillment_core.contracts.types import OrderStatus, WorkerStatus
from fulfillment_core.errors import InvalidTransition, WorkerAlreadyOnline
from fulfillment_core.persistence.models import Order, OrderItem, OrderStatusLog, Worker
from fulfillment_core.timing import as_utc, utcnow

ORDER_NUMBER_PREFIX = "ORD_"


def order_number_prefix(day: date) -> str:
    return f"{ORDER_NUMBER_PREFIX}{day:%Y%m%d}_"


def format_order_number(day: date, sequence: int) -> str:
    """ORD_YYYYMMDD_NNN, zero-padded to at least three digits."""
    return f"{order_number_prefix(day)}{sequence:03d}"


class FulfillmentRepository:
    """Repository for orders, their audit log and the worker registry."""

    def __init__(self, db: Session):
        self.db = db

    # --- Order numbers ---

    def count_orders_for_day(self, day: date) -> int:
        return (
            self.db.query(func.count(Order.id))
            .filter(Order.number.like(f"{order_number_prefix(day)}%"))
            .scalar()
        ) or 0

    def max_sequence_for_day(self, day: date) -> int:
        """Highest sequence already issued for the day (0 if none)."""
        prefix = order_number_prefix(day)
        # Longer suffix wins first, so 1000 sorts above 999
        number = (
            self.db.query(Order.number)
            .filter(Order.number.like(f"{prefix}%"))
            .order_by(func.length(Order.number).desc(), Order.number.desc())
            .limit(1)
            .scalar()
        )
        if not number:
            return 0
        try:
            return int(number[len(prefix):])
        except ValueError:
            return 0

    # --- Orders ---

    def create_order(
        self,
        number: str,
        customer_name: str,
        order_type: str,
        items: list[dict],
        total_amount: Decimal,
        priority: int,
        table_number: int | None = None,
        delivery_address: str | None = None,
        changed_by: str = "order-service",
    ) -> Order:
        """
        Insert an order with its items and the initial 'received' log row.

        Raises:
            IntegrityError: if the order number is already taken
        """
        now = utcnow()
        order = Order(
            number=number,
            customer_name=customer_name,
            type=str(order_type),
            table_number=table_number,
            delivery_address=delivery_address,
            total_amount=total_amount,
            priority=priority,
            status=OrderStatus.RECEIVED.value,
            created_at=now,
            updated_at=now,
        )
        self.db.add(order)
        self.db.flush()

        for item in items:
            self.db.add(
                OrderItem(
                    order_id=order.id,
                    name=item["name"],
                    quantity=item["quantity"],
                    price=item["price"],
                    created_at=now,
                )
            )

        self._append_log(order.id, OrderStatus.RECEIVED, changed_by, "Order received", now)
        self.db.flush()
        return order

    def get_order(self, number: str) -> Order | None:
        return self.db.query(Order).filter(Order.number == number).first()

    def get_history(self, order_id: int) -> list[OrderStatusLog]:
        """Status log rows in transition order."""
        return (
            self.db.query(OrderStatusLog)
            .filter(OrderStatusLog.order_id == order_id)
            .order_by(OrderStatusLog.changed_at.asc(), OrderStatusLog.id.asc())
            .all()
        )

    def transition(
        self,
        order: Order,
        expected: OrderStatus,
        new_status: OrderStatus,
        changed_by: str,
        notes: str | None = None,
        owner: str | None = None,
        values: dict | None = None,
    ) -> bool:
        """
        Move an order from expected to new_status.

        The UPDATE only matches while the row still has the expected status
        (and, when owner is given, is still processed by that worker). Returns False
        when another writer got there first; nothing is logged in that case.

        Raises:
            InvalidTransition: if expected -> new_status is not a legal move
        """
        if not expected.can_transition_to(new_status):
            raise InvalidTransition(order.number, str(expected), str(new_status))

        now = utcnow()
        stmt = (
            update(Order)
            .where(Order.id == order.id, Order.status == expected.value)
            .values(status=new_status.value, updated_at=now, **(values or {}))
            .execution_options(synchronize_session=False)
        )
        if owner is not None:
            stmt = stmt.where(Order.processed_by == owner)

        if self.db.execute(stmt).rowcount != 1:
            return False

        self._append_log(order.id, new_status, changed_by, notes, now)
        self.db.flush()
        self.db.refresh(order)
        return True

    def claim_for_cooking(self, order: Order, worker_name: str) -> bool:
        """received -> cooking, owned by worker_name."""
        return self.transition(
            order,
            OrderStatus.RECEIVED,
            OrderStatus.COOKING,
            changed_by=worker_name,
            notes=f"Order status changed to {OrderStatus.COOKING} by {worker_name}",
            values={"processed_by": worker_name},
        )

    def take_over(self, order: Order, worker_name: str, previous_owner: str | None) -> bool:
        """
        Reassign a cooking order whose owner is no longer live.

        Not a status change, so no log row is written.
        """
        stmt = (
            update(Order)
            .where(Order.id == order.id, Order.status == OrderStatus.COOKING.value)
            .values(processed_by=worker_name, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if previous_owner is None:
            stmt = stmt.where(Order.processed_by.is_(None))
        else:
            stmt = stmt.where(Order.processed_by == previous_owner)

        if self.db.execute(stmt).rowcount != 1:
            return False
        self.db.flush()
        self.db.refresh(order)
        return True

    def release_order(self, number: str, worker_name: str) -> bool:
        """
        Drop this worker's hold on a cooking order so any worker may take it over.

        The order stays 'cooking'; no log row is written.
        """
        result = self.db.execute(
            update(Order)
            .where(
                Order.number == number,
                Order.status == OrderStatus.COOKING.value,
                Order.processed_by == worker_name,
            )
            .values(processed_by=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.flush()
        return result.rowcount == 1

    def mark_ready(self, order: Order, worker_name: str) -> bool:
        """cooking -> ready; only the owning worker may finish an order."""
        ok = self.transition(
            order,
            OrderStatus.COOKING,
            OrderStatus.READY,
            changed_by=worker_name,
            notes="Order completed and ready for pickup/delivery",
            owner=worker_name,
            values={"completed_at": utcnow()},
        )
        if ok:
            self.db.execute(
                update(Worker)
                .where(Worker.name == worker_name)
                .values(orders_processed=Worker.orders_processed + 1, last_seen=utcnow())
                .execution_options(synchronize_session=False)
            )
            self.db.flush()
        return ok

    def _append_log(
        self,
        order_id: int,
        status: OrderStatus,
        changed_by: str,
        notes: str | None,
        changed_at: datetime,
    ) -> OrderStatusLog:
        entry = OrderStatusLog(
            order_id=order_id,
            status=status.value,
            changed_by=changed_by,
            changed_at=changed_at,
            created_at=changed_at,
            notes=notes,
        )
        self.db.add(entry)
        return entry

    # --- Workers ---

    def get_worker(self, name: str) -> Worker | None:
        return self.db.query(Worker).filter(Worker.name == name).first()

    def list_workers(self) -> list[Worker]:
        return self.db.query(Worker).order_by(Worker.created_at.asc(), Worker.id.asc()).all()

    def is_worker_live(self, name: str | None, liveness_window: timedelta) -> bool:
        """Online and heard from within the liveness window."""
        if not name:
            return False
        worker = self.get_worker(name)
        return worker is not None and worker_is_live(worker, liveness_window)

    def register_worker(
        self,
        name: str,
        worker_type: str,
        liveness_window: timedelta,
        now: datetime | None = None,
    ) -> Worker:
        """
        Mark a worker online, creating its row on first start.

        A name that is online with a fresh heartbeat belongs to a running
        worker and is refused. A stale online row is left over from a crash
        and is reclaimed.

        Raises:
            WorkerAlreadyOnline: if a live worker holds the name
        """
        now = now or utcnow()
        worker = (
            self.db.query(Worker)
            .filter(Worker.name == name)
            .with_for_update()
            .first()
        )

        if worker is not None:
            if worker_is_live(worker, liveness_window, now=now):
                raise WorkerAlreadyOnline(name)
            worker.type = worker_type
            worker.status = WorkerStatus.ONLINE.value
            worker.last_seen = now
            self.db.flush()
            return worker

        worker = Worker(
            name=name,
            type=worker_type,
            status=WorkerStatus.ONLINE.value,
            last_seen=now,
            orders_processed=0,
            created_at=now,
        )
        self.db.add(worker)
        try:
            self.db.flush()
        except IntegrityError as e:
            # Lost an insert race on the unique name
            raise WorkerAlreadyOnline(name) from e
        return worker

    def heartbeat(self, name: str) -> bool:
        result = self.db.execute(
            update(Worker)
            .where(Worker.name == name)
            .values(status=WorkerStatus.ONLINE.value, last_seen=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def mark_offline(self, name: str) -> bool:
        result = self.db.execute(
            update(Worker)
            .where(Worker.name == name)
            .values(status=WorkerStatus.OFFLINE.value, last_seen=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


def worker_is_live(worker: Worker, liveness_window: timedelta, now: datetime | None = None) -> bool:
    if worker.status != WorkerStatus.ONLINE.value or worker.last_seen is None:
        return False
    now = now or utcnow()
    return now - as_utc(worker.last_seen) <= liveness_window
