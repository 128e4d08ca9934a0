"""
Tests for epoch_distributor/protocol/pricing.py and protocol/messages.py

Tests price payload shapes, range checks and HTTP failure handling.
"""

import json
from decimal import Decimal
from unittest.mock import Mock

import pytest
import requests

from epoch_distributor.exceptions import OracleError
from epoch_distributor.protocol.messages import Malformed, Parsed, as_decimal
from epoch_distributor.protocol.pricing import JupiterPriceOracle, parse_price_payload


def create_mock_session(body=None, status=200, text=None):
    """Mock requests session whose GET returns one response."""
    response = Mock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.text = text if text is not None else json.dumps(body)
    session = Mock()
    session.get.return_value = response
    return session


# ============================================================================
# PAYLOAD TESTS
# ============================================================================

class TestParsePricePayload:
    """Tests for parse_price_payload."""

    @pytest.mark.parametrize("body", [
        {"data": {"SOL": {"price": Decimal("142.5")}}},
        {"SOL": {"price": Decimal("142.5")}},
        {"price": Decimal("142.5")},
        {"price": "142.5"},
    ])
    def test_accepted_shapes(self, body):
        parsed = parse_price_payload(body)
        assert isinstance(parsed, Parsed)
        assert parsed["price"] == Decimal("142.5")

    def test_nested_shape_wins(self):
        body = {"data": {"SOL": {"price": 1}}, "price": 2}
        assert parse_price_payload(body)["price"] == Decimal(1)

    @pytest.mark.parametrize("price", [0, -1, "1000000.01", "abc", None, True])
    def test_rejected_prices(self, price):
        assert isinstance(parse_price_payload({"price": price}), Malformed)

    def test_upper_bound_inclusive(self):
        assert parse_price_payload({"price": 1_000_000})["price"] == Decimal(1_000_000)

    def test_missing_price(self):
        parsed = parse_price_payload({"data": {}})
        assert isinstance(parsed, Malformed)
        assert "no numeric price" in parsed.reason


class TestAsDecimal:
    """Tests for as_decimal."""

    def test_numeric_values(self):
        assert as_decimal(3) == Decimal(3)
        assert as_decimal(Decimal("0.1")) == Decimal("0.1")
        assert as_decimal(" 2.5 ") == Decimal("2.5")

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "", [], {}, False, 1.5])
    def test_rejected_values(self, value):
        assert as_decimal(value) is None


# ============================================================================
# ORACLE TESTS
# ============================================================================

class TestJupiterPriceOracle:
    """Tests for JupiterPriceOracle.get_price."""

    def test_get_price(self):
        session = create_mock_session(text='{"data": {"SOL": {"id": "SOL", "price": 142.37}}}')
        oracle = JupiterPriceOracle("https://price.test/v6/price", timeout=5, session=session)

        price = oracle.get_price()

        assert price == Decimal("142.37")
        session.get.assert_called_once_with(
            "https://price.test/v6/price", params={"ids": "SOL"}, timeout=5
        )

    def test_ids_not_duplicated(self):
        session = create_mock_session({"price": "150"})
        oracle = JupiterPriceOracle("https://price.test/v6/price?ids=SOL", session=session)

        oracle.get_price()

        assert session.get.call_args.kwargs["params"] == {}

    def test_http_error(self):
        oracle = JupiterPriceOracle("https://price.test", session=create_mock_session(status=502, text="bad"))
        with pytest.raises(OracleError) as exc_info:
            oracle.get_price()
        assert exc_info.value.context["status"] == 502

    def test_transport_error(self):
        session = Mock()
        session.get.side_effect = requests.Timeout("slow")
        oracle = JupiterPriceOracle("https://price.test", session=session)
        with pytest.raises(OracleError):
            oracle.get_price()

    def test_non_json_body(self):
        oracle = JupiterPriceOracle("https://price.test", session=create_mock_session(text="<html>"))
        with pytest.raises(OracleError):
            oracle.get_price()

    def test_non_object_body(self):
        oracle = JupiterPriceOracle("https://price.test", session=create_mock_session(text="[1, 2]"))
        with pytest.raises(OracleError):
            oracle.get_price()

    def test_out_of_range(self):
        oracle = JupiterPriceOracle("https://price.test", session=create_mock_session({"price": 2_000_000}))
        with pytest.raises(OracleError):
            oracle.get_price()
