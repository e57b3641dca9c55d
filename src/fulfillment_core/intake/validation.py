"""
Order request validation.

Checks run in a fixed order and stop at the first failure, so a request
with several problems always reports the same field.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from fulfillment_core.contracts.types import OrderType
from fulfillment_core.errors import ValidationError

MAX_CUSTOMER_NAME_LENGTH = 100
MAX_ITEMS = 20
MAX_ITEM_NAME_LENGTH = 50
MIN_QUANTITY, MAX_QUANTITY = 1, 10
MIN_PRICE, MAX_PRICE = Decimal("0.01"), Decimal("999.99")
MIN_TABLE, MAX_TABLE = 1, 100
MIN_ADDRESS_LENGTH = 10

NAME_PUNCTUATION = " -'"


@dataclass
class OrderItemRequest:
    name: str
    quantity: int
    price: Decimal


@dataclass
class OrderRequest:
    """An incoming order, before validation."""

    customer_name: str
    order_type: str
    items: list[OrderItemRequest] = field(default_factory=list)
    table_number: int | None = None
    delivery_address: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderRequest":
        """
        Build a request from decoded JSON.

        Raises:
            ValidationError: if a field has the wrong shape
        """
        raw_items = data.get("items")
        if raw_items is None:
            raw_items = []
        if not isinstance(raw_items, list):
            raise ValidationError("items", "items must be a list")

        items = []
        for index, raw in enumerate(raw_items):
            if not isinstance(raw, dict):
                raise ValidationError(f"items[{index}]", "item must be an object")
            items.append(
                OrderItemRequest(
                    name=_to_str(raw.get("name"), f"items[{index}].name"),
                    quantity=_to_int(raw.get("quantity"), f"items[{index}].quantity"),
                    price=_to_decimal(raw.get("price"), f"items[{index}].price"),
                )
            )

        table_number = data.get("table_number")
        return cls(
            customer_name=_to_str(data.get("customer_name"), "customer_name"),
            order_type=_to_str(data.get("order_type"), "order_type"),
            items=items,
            table_number=None if table_number is None else _to_int(table_number, "table_number"),
            delivery_address=_to_optional_str(data.get("delivery_address"), "delivery_address"),
        )


def _to_str(value: Any, field_name: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(field_name, "must be a string")
    return value


def _to_optional_str(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    return _to_str(value, field_name)


def _to_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or value is None:
        raise ValidationError(field_name, "must be an integer")
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(field_name, "must be an integer")
    if number != number.to_integral_value():
        raise ValidationError(field_name, "must be an integer")
    return int(number)


def _to_decimal(value: Any, field_name: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(field_name, "must be a number")
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(field_name, "must be a number")
    if not number.is_finite():
        raise ValidationError(field_name, "must be a number")
    return number


def validate_order_request(req: OrderRequest) -> None:
    """
    Validate an order request.

    Raises:
        ValidationError: naming the first offending field
    """
    _validate_customer_name(req.customer_name)
    order_type = _validate_order_type(req.order_type)
    _validate_type_fields(req, order_type)
    _validate_items(req.items)


def _validate_customer_name(name: str) -> None:
    if not name or not name.strip():
        raise ValidationError("customer_name", "customer name is required")
    if len(name) > MAX_CUSTOMER_NAME_LENGTH:
        raise ValidationError(
            "customer_name", f"customer name must be at most {MAX_CUSTOMER_NAME_LENGTH} characters"
        )
    if not all(ch.isalpha() or ch in NAME_PUNCTUATION for ch in name):
        raise ValidationError(
            "customer_name", "customer name may only contain letters, spaces, hyphens and apostrophes"
        )


def _validate_order_type(order_type: str) -> OrderType:
    if not order_type:
        raise ValidationError("order_type", "order type is required")
    try:
        return OrderType(order_type)
    except ValueError:
        allowed = ", ".join(t.value for t in OrderType)
        raise ValidationError("order_type", f"order type must be one of: {allowed}")


def _validate_type_fields(req: OrderRequest, order_type: OrderType) -> None:
    has_table = req.table_number is not None
    has_address = req.delivery_address is not None and req.delivery_address != ""

    if order_type is OrderType.DINE_IN:
        if has_address:
            raise ValidationError("delivery_address", "delivery address is not allowed for dine_in orders")
        if not has_table:
            raise ValidationError("table_number", "table number is required for dine_in orders")
        if not MIN_TABLE <= req.table_number <= MAX_TABLE:
            raise ValidationError("table_number", f"table number must be between {MIN_TABLE} and {MAX_TABLE}")

    elif order_type is OrderType.DELIVERY:
        if has_table:
            raise ValidationError("table_number", "table number is not allowed for delivery orders")
        if not has_address:
            raise ValidationError("delivery_address", "delivery address is required for delivery orders")
        if len(req.delivery_address.strip()) < MIN_ADDRESS_LENGTH:
            raise ValidationError(
                "delivery_address", f"delivery address must be at least {MIN_ADDRESS_LENGTH} characters"
            )

    else:
        if has_table:
            raise ValidationError("table_number", "table number is not allowed for takeout orders")
        if has_address:
            raise ValidationError("delivery_address", "delivery address is not allowed for takeout orders")


def _validate_items(items: list[OrderItemRequest]) -> None:
    if not items:
        raise ValidationError("items", "items cannot be empty")
    if len(items) > MAX_ITEMS:
        raise ValidationError("items", f"a maximum of {MAX_ITEMS} items is allowed")

    for index, item in enumerate(items):
        prefix = f"items[{index}]"
        if not item.name or not item.name.strip():
            raise ValidationError(f"{prefix}.name", "item name is required")
        if len(item.name) > MAX_ITEM_NAME_LENGTH:
            raise ValidationError(
                f"{prefix}.name", f"item name must be at most {MAX_ITEM_NAME_LENGTH} characters"
            )
        if not MIN_QUANTITY <= item.quantity <= MAX_QUANTITY:
            raise ValidationError(
                f"{prefix}.quantity", f"item quantity must be between {MIN_QUANTITY} and {MAX_QUANTITY}"
            )
        if not MIN_PRICE <= item.price <= MAX_PRICE:
            raise ValidationError(f"{prefix}.price", f"item price must be between {MIN_PRICE} and {MAX_PRICE}")
        if item.price.as_tuple().exponent < -2:
            raise ValidationError(f"{prefix}.price", "item price must have at most 2 decimal places")
