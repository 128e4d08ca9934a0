"""
epoch_distributor/protocol/pricing.py

USD price feed for the native token.

Queries a Jupiter-style price API:
- https://price.jup.ag/v6/price?ids=SOL

The price is used only for the epoch threshold gate. It is read as a
Decimal straight from the JSON body so no binary float enters the USD
valuation.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, urlparse

import requests

from ..config import DEFAULT_REQUEST_TIMEOUT
from ..exceptions import OracleError
from .messages import Malformed, Parsed, ParseResult, as_decimal, decode_json_body

logger = logging.getLogger("epoch_distributor.protocol.pricing")


# ============================================================================
# CONSTANTS
# ============================================================================

# Symbol requested when the configured URL does not name one
DEFAULT_PRICE_ID = "SOL"

# Sanity bound on the quoted USD price (exclusive of 0, inclusive of max)
MAX_SANE_PRICE = Decimal(1_000_000)


def parse_price_payload(body: Dict[str, Any], symbol: str = DEFAULT_PRICE_ID) -> ParseResult:
    """
    Extract the price from any of the accepted response shapes:

        {"data": {"SOL": {"price": p}}}
        {"SOL": {"price": p}}
        {"price": p}

    Returns:
        Parsed({"price": Decimal}) or Malformed
    """
    candidates = []
    data = body.get("data")
    if isinstance(data, dict) and isinstance(data.get(symbol), dict):
        candidates.append(data[symbol].get("price"))
    if isinstance(body.get(symbol), dict):
        candidates.append(body[symbol].get("price"))
    if "price" in body:
        candidates.append(body["price"])

    for raw in candidates:
        price = as_decimal(raw)
        if price is not None:
            if price <= 0 or price > MAX_SANE_PRICE:
                return Malformed(raw=body, reason=f"price {price} outside (0, {MAX_SANE_PRICE}]")
            return Parsed({"price": price})

    return Malformed(raw=body, reason="no numeric price in response")


class JupiterPriceOracle:
    """
    Fetches the native token's USD price.

    Example:
        oracle = JupiterPriceOracle("https://price.jup.ag/v6/price")
        price = oracle.get_price()   # Decimal("142.37")
    """

    def __init__(
        self,
        price_api_url: str,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
        symbol: str = DEFAULT_PRICE_ID,
    ):
        self.price_api_url = price_api_url
        self.symbol = symbol
        self._timeout = timeout
        self._session = session or requests.Session()

    def _request_params(self) -> Dict[str, str]:
        query = parse_qs(urlparse(self.price_api_url).query)
        if "ids" in query:
            return {}
        return {"ids": self.symbol}

    def get_price(self) -> Decimal:
        """
        Get the current USD price.

        Returns:
            Price as Decimal, 0 < price <= 1_000_000

        Raises:
            OracleError: On transport failure, non-2xx status, non-JSON body,
                missing price, or out-of-range price
        """
        try:
            response = self._session.get(
                self.price_api_url,
                params=self._request_params(),
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise OracleError(
                "Price API request failed",
                context={"url": self.price_api_url},
                original_error=e,
            )

        if not response.ok:
            raise OracleError(
                f"Price API returned {response.status_code}",
                context={"url": self.price_api_url, "status": response.status_code},
            )

        decoded = decode_json_body(response)
        if isinstance(decoded, Malformed):
            raise OracleError(
                f"Price API {decoded.reason}",
                context={"url": self.price_api_url, "body": decoded.preview()},
            )

        parsed = parse_price_payload(decoded["body"], self.symbol)
        if isinstance(parsed, Malformed):
            raise OracleError(
                f"Price API response rejected: {parsed.reason}",
                context={"url": self.price_api_url, "body": parsed.preview()},
            )

        price = parsed["price"]
        logger.debug(f"{self.symbol} price: ${price}")
        return price

    def close(self) -> None:
        self._session.close()
