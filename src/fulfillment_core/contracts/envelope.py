"""
Message envelopes carried by the broker.

Two messages flow through the system:
- WorkMessage: published by intake to the work exchange, consumed by kitchen workers
- StatusNotification: published by workers to the fanout exchange, consumed by relays

Both are self-contained: a worker can cook an order and a relay can render a
notification without querying the store.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from fulfillment_core.contracts.types import OrderType


class EnvelopeError(ValueError):
    """Raised when a message body cannot be parsed into an envelope."""


def routing_key_for(order_type: OrderType | str, priority: int) -> str:
    """Routing key for a work message: kitchen.<type>.<priority>."""
    return f"kitchen.{order_type}.{priority}"


def _loads(body: bytes | str) -> dict[str, Any]:
    try:
        data = json.loads(body)
    except (TypeError, ValueError) as e:
        raise EnvelopeError(f"Message body is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise EnvelopeError("Message body must be a JSON object")
    return data


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass
class WorkItem:
    name: str
    quantity: int
    price: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "quantity": self.quantity, "price": float(self.price)}


@dataclass
class WorkMessage:
    """
    Work message for kitchen workers.

    Routed on the work exchange with key kitchen.<order_type>.<priority>.
    """

    order_number: str
    customer_name: str
    order_type: str
    items: list[WorkItem]
    total_amount: Decimal
    priority: int
    table_number: int | None = None
    delivery_address: str | None = None

    @property
    def routing_key(self) -> str:
        return routing_key_for(self.order_type, self.priority)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkMessage":
        try:
            return cls(
                order_number=data["order_number"],
                customer_name=data.get("customer_name", ""),
                order_type=data["order_type"],
                items=[
                    WorkItem(
                        name=item["name"],
                        quantity=int(item["quantity"]),
                        price=Decimal(str(item["price"])),
                    )
                    for item in data.get("items") or []
                ],
                total_amount=Decimal(str(data.get("total_amount", "0"))),
                priority=int(data.get("priority", 1)),
                table_number=data.get("table_number"),
                delivery_address=data.get("delivery_address"),
            )
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            raise EnvelopeError(f"Invalid work message: {e!r}") from e

    @classmethod
    def from_body(cls, body: bytes | str) -> "WorkMessage":
        return cls.from_dict(_loads(body))

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_number": self.order_number,
            "customer_name": self.customer_name,
            "order_type": self.order_type,
            "table_number": self.table_number,
            "delivery_address": self.delivery_address,
            "items": [item.to_dict() for item in self.items],
            "total_amount": float(self.total_amount),
            "priority": self.priority,
        }


@dataclass
class StatusNotification:
    """
    Status change broadcast on the fanout exchange.

    estimated_completion is only set for the cooking transition.
    """

    order_number: str
    old_status: str
    new_status: str
    changed_by: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    estimated_completion: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StatusNotification":
        try:
            return cls(
                order_number=data["order_number"],
                old_status=data.get("old_status", ""),
                new_status=data["new_status"],
                changed_by=data.get("changed_by", ""),
                timestamp=_parse_datetime(data.get("timestamp")) or datetime.now(timezone.utc),
                estimated_completion=_parse_datetime(data.get("estimated_completion")),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise EnvelopeError(f"Invalid status notification: {e!r}") from e

    @classmethod
    def from_body(cls, body: bytes | str) -> "StatusNotification":
        return cls.from_dict(_loads(body))

    def to_dict(self) -> dict[str, Any]:
        data = {
            "order_number": self.order_number,
            "old_status": self.old_status,
            "new_status": self.new_status,
            "changed_by": self.changed_by,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.estimated_completion is not None:
            data["estimated_completion"] = self.estimated_completion.isoformat()
        return data
