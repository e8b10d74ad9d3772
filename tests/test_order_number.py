"""Tests for order number generation and validation."""

from datetime import datetime, timezone

from redsys_core.models.enums import OrderTag
from redsys_core.protocol.order_number import (
    ALPHANUMERIC,
    extract_tag,
    generate_order_number,
    is_valid_order_number,
)


class TestGeneration:
    def test_format(self):
        for _ in range(200):
            order = generate_order_number(OrderTag.SHOP)
            assert len(order) <= 12
            assert order[:4].isdigit()
            assert order[4] == "S"
            assert all(ch in ALPHANUMERIC for ch in order[5:])
            assert is_valid_order_number(order)

    def test_date_prefix(self):
        order = generate_order_number(OrderTag.RECURRING, now=datetime(2026, 10, 17, tzinfo=timezone.utc))
        assert order.startswith("2610R")
        assert len(order) == 12

    def test_default_tag(self):
        assert generate_order_number()[4] == "X"

    def test_unique(self):
        orders = {generate_order_number(OrderTag.MEMBERSHIP) for _ in range(1000)}
        assert len(orders) == 1000


class TestValidation:
    def test_rejects_non_numeric_prefix(self):
        assert not is_valid_order_number("25A3R0000001")
        assert not is_valid_order_number("ABCDR0000001")

    def test_rejects_non_ascii_digits(self):
        assert not is_valid_order_number("２５０３R00001")

    def test_length_bounds(self):
        assert is_valid_order_number("2503")
        assert not is_valid_order_number("250")
        assert not is_valid_order_number("2503R00000012")

    def test_rejects_symbols(self):
        assert not is_valid_order_number("2503R-000001")


class TestExtractTag:
    def test_known_tags(self):
        assert extract_tag("2503R0000001") == OrderTag.RECURRING
        assert extract_tag("2503D0000001") == OrderTag.REFUND

    def test_unknown_or_short(self):
        assert extract_tag("2503Z0000001") is None
        assert extract_tag("2503") is None
