"""
Tests for order request validation.
"""

import pytest

from fulfillment_core.errors import ValidationError
from fulfillment_core.intake.validation import OrderRequest, validate_order_request


def make_request(**overrides):
    data = {
        "customer_name": "Jane Smith",
        "order_type": "takeout",
        "items": [{"name": "Margherita", "quantity": 1, "price": 12.5}],
    }
    data.update(overrides)
    return OrderRequest.from_dict(data)


def rejected_field(req) -> str:
    with pytest.raises(ValidationError) as exc_info:
        validate_order_request(req)
    return exc_info.value.field


class TestValidOrders:
    def test_takeout(self):
        validate_order_request(make_request())

    def test_dine_in(self):
        validate_order_request(make_request(order_type="dine_in", table_number=12))

    def test_delivery(self):
        validate_order_request(make_request(order_type="delivery", delivery_address="123 Main Street"))

    def test_name_with_hyphen_and_apostrophe(self):
        validate_order_request(make_request(customer_name="Mary-Jane O'Neil"))

    def test_twenty_items(self):
        items = [{"name": f"Item {i}", "quantity": 1, "price": 1} for i in range(20)]
        validate_order_request(make_request(items=items))


class TestCustomerName:
    def test_empty(self):
        assert rejected_field(make_request(customer_name="")) == "customer_name"

    def test_blank(self):
        assert rejected_field(make_request(customer_name="   ")) == "customer_name"

    def test_too_long(self):
        assert rejected_field(make_request(customer_name="A" * 101)) == "customer_name"

    def test_digits(self):
        assert rejected_field(make_request(customer_name="J0hn")) == "customer_name"

    def test_hundred_characters_is_fine(self):
        validate_order_request(make_request(customer_name="A" * 100))


class TestOrderType:
    def test_missing(self):
        assert rejected_field(make_request(order_type="")) == "order_type"

    def test_unknown(self):
        assert rejected_field(make_request(order_type="pickup")) == "order_type"


class TestTypeSpecificFields:
    def test_dine_in_with_delivery_address(self):
        req = make_request(order_type="dine_in", table_number=5, delivery_address="123 Main Street")
        assert rejected_field(req) == "delivery_address"

    def test_dine_in_without_table(self):
        assert rejected_field(make_request(order_type="dine_in")) == "table_number"

    @pytest.mark.parametrize("table", [0, 101])
    def test_dine_in_table_out_of_range(self, table):
        assert rejected_field(make_request(order_type="dine_in", table_number=table)) == "table_number"

    def test_delivery_with_table(self):
        req = make_request(order_type="delivery", delivery_address="123 Main Street", table_number=4)
        assert rejected_field(req) == "table_number"

    def test_delivery_without_address(self):
        assert rejected_field(make_request(order_type="delivery")) == "delivery_address"

    def test_delivery_address_too_short(self):
        assert rejected_field(make_request(order_type="delivery", delivery_address="1 Main")) == "delivery_address"

    def test_takeout_with_table(self):
        assert rejected_field(make_request(table_number=3)) == "table_number"

    def test_takeout_with_address(self):
        assert rejected_field(make_request(delivery_address="123 Main Street")) == "delivery_address"


class TestItems:
    def test_empty(self):
        assert rejected_field(make_request(items=[])) == "items"

    def test_too_many(self):
        items = [{"name": "Slice", "quantity": 1, "price": 2} for _ in range(21)]
        assert rejected_field(make_request(items=items)) == "items"

    def test_name_too_long(self):
        items = [{"name": "x" * 51, "quantity": 1, "price": 2}]
        assert rejected_field(make_request(items=items)) == "items[0].name"

    @pytest.mark.parametrize("quantity", [0, 11])
    def test_quantity_out_of_range(self, quantity):
        items = [
            {"name": "Salad", "quantity": 1, "price": 5},
            {"name": "Soda", "quantity": quantity, "price": 2},
        ]
        assert rejected_field(make_request(items=items)) == "items[1].quantity"

    @pytest.mark.parametrize("price", [0, 0.001, 1000])
    def test_price_out_of_range(self, price):
        items = [{"name": "Soda", "quantity": 1, "price": price}]
        assert rejected_field(make_request(items=items)) == "items[0].price"

    def test_price_bounds_inclusive(self):
        items = [
            {"name": "Mint", "quantity": 1, "price": 0.01},
            {"name": "Truffle", "quantity": 1, "price": 999.99},
        ]
        validate_order_request(make_request(items=items))


class TestFromDict:
    def test_non_numeric_quantity(self):
        with pytest.raises(ValidationError) as exc_info:
            make_request(items=[{"name": "Soda", "quantity": "two", "price": 2}])
        assert exc_info.value.field == "items[0].quantity"

    def test_fractional_table_number(self):
        with pytest.raises(ValidationError) as exc_info:
            make_request(order_type="dine_in", table_number=2.5)
        assert exc_info.value.field == "table_number"

    def test_items_not_a_list(self):
        with pytest.raises(ValidationError) as exc_info:
            make_request(items="pizza")
        assert exc_info.value.field == "items"

    @pytest.mark.parametrize("overrides,field", [
        ({"customer_name": 123}, "customer_name"),
        ({"order_type": ["delivery"]}, "order_type"),
        ({"delivery_address": {"street": "Main"}}, "delivery_address"),
        ({"items": [{"name": 7, "quantity": 1, "price": 2}]}, "items[0].name"),
    ])
    def test_text_fields_must_be_strings(self, overrides, field):
        with pytest.raises(ValidationError) as exc_info:
            make_request(**overrides)
        assert exc_info.value.field == field
        assert "must be a string" in str(exc_info.value)

    def test_missing_delivery_address_stays_unset(self):
        req = OrderRequest.from_dict(
            {"customer_name": "Sam", "order_type": "takeout", "items": [{"name": "Wings", "quantity": 1, "price": 8}]}
        )
        assert req.delivery_address is None
