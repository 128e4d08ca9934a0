"""
epoch_distributor/ledger/connection.py

Low-level HTTP transport for the ledger node's JSON-RPC endpoint.
"""

import logging
from typing import Any, Dict, Optional

import requests

from ..exceptions import LedgerError

logger = logging.getLogger("epoch_distributor.ledger.connection")


class RpcConnection:
    """
    Manages an HTTP session to a JSON-RPC endpoint.

    One request per call, no retries. Errors surface as LedgerError.
    """

    DEFAULT_TIMEOUT = 30  # seconds

    def __init__(
        self,
        endpoint: str,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize connection parameters.

        Args:
            endpoint: JSON-RPC URL of the ledger node
            timeout: Request timeout in seconds
            session: Optional pre-built requests session
        """
        self.endpoint = endpoint
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    def send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST a JSON-RPC request and return the decoded response object.

        Args:
            payload: JSON-RPC request dict

        Returns:
            Decoded JSON response

        Raises:
            LedgerError: On transport failure, non-2xx status or non-JSON body
        """
        method = payload.get("method")
        try:
            response = self._session.post(self.endpoint, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise LedgerError(
                f"RPC transport error calling {method}",
                context={"method": method, "endpoint": self.endpoint},
                original_error=e,
            )

        if not response.ok:
            raise LedgerError(
                f"RPC {method} returned HTTP {response.status_code}",
                context={
                    "method": method,
                    "status": response.status_code,
                    "body": response.text[:500],
                },
            )

        try:
            data = response.json()
        except ValueError as e:
            raise LedgerError(
                f"RPC {method} returned a non-JSON body",
                context={"method": method, "body": response.text[:500]},
                original_error=e,
            )

        if not isinstance(data, dict):
            raise LedgerError(
                f"RPC {method} returned an unexpected payload",
                context={"method": method},
            )

        logger.debug(f"RPC {method} -> {response.status_code}")
        return data

    def close(self) -> None:
        """Close the underlying session."""
        self._session.close()
