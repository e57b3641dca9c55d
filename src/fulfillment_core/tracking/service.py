"""
Read-only views over orders and workers.
"""

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kitchen_base.settings import Settings, get_settings
from fulfillment_core.contracts.types import OrderStatus, WorkerStatus
from fulfillment_core.errors import OrderNotFound, ValidationError
from fulfillment_core.persistence.models import Order
from fulfillment_core.persistence.repo import ORDER_NUMBER_PREFIX, FulfillmentRepository, worker_is_live
from fulfillment_core.timing import as_utc, prep_duration

logger = logging.getLogger(__name__)

MIN_ORDER_NUMBER_LENGTH = len("ORD_YYYYMMDD_N")


def check_order_number(order_number: str) -> None:
    """
    Raises:
        ValidationError: if the value cannot be an order number
    """
    if not order_number.startswith(ORDER_NUMBER_PREFIX) or len(order_number) < MIN_ORDER_NUMBER_LENGTH:
        raise ValidationError("order_number", "invalid order number format")


class TrackingService:
    """Order status, order history and the worker roster."""

    def __init__(self, db: Session, settings: Settings | None = None):
        self.db = db
        self.repo = FulfillmentRepository(db)
        self.settings = settings or get_settings()

    def _get_order(self, order_number: str) -> Order:
        check_order_number(order_number)
        order = self.repo.get_order(order_number)
        if order is None:
            raise OrderNotFound(order_number)
        return order

    def get_order_status(self, order_number: str) -> dict[str, Any]:
        """
        Current status of an order.

        estimated_completion is only reported while the order is cooking.

        Raises:
            OrderNotFound: if no order has this number
        """
        order = self._get_order(order_number)
        updated_at = as_utc(order.updated_at)

        result: dict[str, Any] = {
            "order_number": order.number,
            "current_status": order.status,
            "updated_at": updated_at.isoformat(),
        }
        if order.status == OrderStatus.COOKING.value:
            estimated = updated_at + prep_duration(order.type, self.settings)
            result["estimated_completion"] = estimated.isoformat()
        if order.processed_by:
            result["processed_by"] = order.processed_by
        return result

    def get_order_history(self, order_number: str) -> list[dict[str, Any]]:
        """
        Status transitions in the order they happened.

        Raises:
            OrderNotFound: if no order has this number
        """
        order = self._get_order(order_number)
        history = []
        for entry in self.repo.get_history(order.id):
            item = {
                "status": entry.status,
                "changed_by": entry.changed_by,
                "timestamp": as_utc(entry.changed_at).isoformat(),
            }
            if entry.notes:
                item["notes"] = entry.notes
            history.append(item)
        return history

    def list_workers(self) -> list[dict[str, Any]]:
        """Every known worker. An online worker without a recent heartbeat is reported offline."""
        window = timedelta(seconds=2 * self.settings.HEARTBEAT_INTERVAL)
        workers = []
        for worker in self.repo.list_workers():
            status = WorkerStatus.ONLINE if worker_is_live(worker, window) else WorkerStatus.OFFLINE
            workers.append(
                {
                    "worker_name": worker.name,
                    "status": status.value,
                    "orders_processed": worker.orders_processed,
                    "last_seen": as_utc(worker.last_seen).isoformat(),
                }
            )
        return workers

    def health(self) -> bool:
        try:
            self.db.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Health check failed: {e}")
            return False
