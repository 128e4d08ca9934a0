"""
epoch_distributor/ledger/client.py

Ledger JSON-RPC client for balance reads, freshness tokens, transaction
broadcast and confirmation, and token-account scans.

Provides methods for:
- Balance queries
- Recent blockhash (freshness token) and block height
- Transaction broadcasting
- Confirmation polling bounded by the blockhash expiry height
- Program account scans (for holder enumeration)
"""

import base64
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from solders.hash import Hash
from solders.pubkey import Pubkey

from ..config import DEFAULT_COMMITMENT, DEFAULT_REQUEST_TIMEOUT
from ..exceptions import LedgerError, LedgerTimeoutError
from .connection import RpcConnection

logger = logging.getLogger("epoch_distributor.ledger.client")


# ============================================================================
# CONFIGURATION
# ============================================================================

# Polling cadence while waiting for confirmation (seconds)
CONFIRM_POLL_INTERVAL = 0.5

# Upper bound on confirmation waits when no expiry height is known (seconds)
DEFAULT_CONFIRM_TIMEOUT = 90.0

# Ordering of commitment levels, lowest first
COMMITMENT_RANK = {
    "processed": 0,
    "confirmed": 1,
    "finalized": 2,
}


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class FreshnessToken:
    """Recent blockhash and the last block height at which it is valid."""
    blockhash: Hash
    last_valid_block_height: int

    def to_dict(self) -> dict:
        return {
            "blockhash": str(self.blockhash),
            "last_valid_block_height": self.last_valid_block_height,
        }


def commitment_reached(status: Dict[str, Any], commitment: str) -> bool:
    """
    Check whether a signature status satisfies a commitment level.

    A status with confirmations == None is rooted (finalized).
    """
    reported = status.get("confirmationStatus")
    if reported is None:
        reported = "finalized" if status.get("confirmations") is None else "processed"
    return COMMITMENT_RANK.get(reported, -1) >= COMMITMENT_RANK[commitment]


# ============================================================================
# LEDGER CLIENT
# ============================================================================

class LedgerClient:
    """
    JSON-RPC client for the ledger node.

    Example:
        client = LedgerClient("https://api.mainnet-beta.solana.com")

        lamports = client.get_balance(reserve_pubkey)
        token = client.get_latest_blockhash()
        signature = client.send_transaction(bytes(signed_tx))
        client.confirm_transaction(signature, token.last_valid_block_height)

        client.close()
    """

    def __init__(
        self,
        endpoint: str,
        commitment: str = DEFAULT_COMMITMENT,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        connection: Optional[RpcConnection] = None,
        poll_interval: float = CONFIRM_POLL_INTERVAL,
        confirm_timeout: float = DEFAULT_CONFIRM_TIMEOUT,
    ):
        """
        Initialize the client.

        Args:
            endpoint: JSON-RPC URL
            commitment: Commitment level for reads and confirmations
            timeout: HTTP request timeout in seconds
            connection: Optional pre-built RpcConnection
            poll_interval: Seconds between confirmation polls
            confirm_timeout: Wall-clock bound when no expiry height is known
        """
        if commitment not in COMMITMENT_RANK:
            raise ValueError(f"Unknown commitment level: {commitment}")

        self.endpoint = endpoint
        self.commitment = commitment
        self.poll_interval = poll_interval
        self.confirm_timeout = confirm_timeout
        self._connection = connection or RpcConnection(endpoint, timeout=timeout)
        self._request_id = 0

    def _next_id(self) -> int:
        """Get next request ID."""
        self._request_id += 1
        return self._request_id

    def _call(self, method: str, *params) -> Any:
        """
        Make a JSON-RPC call.

        Args:
            method: RPC method name
            *params: Method parameters

        Returns:
            The "result" member of the response

        Raises:
            LedgerError: On communication or server error
        """
        request = {
            "jsonrpc": "2.0",
            "id": self._next_id(),
            "method": method,
            "params": list(params),
        }

        response = self._connection.send(request)

        if "error" in response and response["error"]:
            error = response["error"]
            msg = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise LedgerError(
                f"RPC {method} failed: {msg}",
                context={"method": method, "error": error},
            )

        if "result" not in response:
            raise LedgerError(f"RPC {method} returned no result", context={"method": method})

        return response["result"]

    @staticmethod
    def _value(result: Any, method: str) -> Any:
        """Unwrap {"context": ..., "value": ...} responses."""
        if not isinstance(result, dict) or "value" not in result:
            raise LedgerError(f"RPC {method} returned an unexpected shape", context={"method": method})
        return result["value"]

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    def get_balance(self, address: Pubkey) -> int:
        """
        Get the native balance of an account.

        Args:
            address: Account public key

        Returns:
            Balance in lamports
        """
        result = self._call("getBalance", str(address), {"commitment": self.commitment})
        value = self._value(result, "getBalance")
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise LedgerError(f"getBalance returned a non-integer value: {value!r}")
        return value

    def get_latest_blockhash(self) -> FreshnessToken:
        """
        Fetch a fresh blockhash to sign against.

        Returns:
            FreshnessToken with blockhash and expiry height
        """
        result = self._call("getLatestBlockhash", {"commitment": self.commitment})
        value = self._value(result, "getLatestBlockhash")
        try:
            return FreshnessToken(
                blockhash=Hash.from_string(value["blockhash"]),
                last_valid_block_height=int(value["lastValidBlockHeight"]),
            )
        except Exception as e:
            raise LedgerError(
                "getLatestBlockhash returned a malformed value",
                context={"value": value},
                original_error=e,
            )

    def get_block_height(self) -> int:
        """
        Get current block height.

        Returns:
            Current block height at the client's commitment
        """
        result = self._call("getBlockHeight", {"commitment": self.commitment})
        return int(result)

    def send_transaction(
        self,
        raw_transaction: bytes,
        skip_preflight: bool = False,
        max_retries: Optional[int] = None,
    ) -> str:
        """
        Broadcast a signed, serialized transaction.

        Args:
            raw_transaction: Wire-format signed transaction
            skip_preflight: Skip the node's simulation step
            max_retries: Node-side rebroadcast attempts

        Returns:
            Transaction signature (base58)

        Raises:
            LedgerError: If the node rejects the transaction
        """
        options: Dict[str, Any] = {
            "encoding": "base64",
            "skipPreflight": skip_preflight,
            "preflightCommitment": self.commitment,
        }
        if max_retries is not None:
            options["maxRetries"] = max_retries

        encoded = base64.b64encode(raw_transaction).decode("ascii")
        result = self._call("sendTransaction", encoded, options)

        if not isinstance(result, str) or not result:
            raise LedgerError(f"Broadcast failed: {result!r}")

        logger.info(f"Transaction broadcast: {result}")
        return result

    def get_signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        """
        Look up the status of a signature.

        Args:
            signature: Transaction signature

        Returns:
            Status dict, or None if the node has not seen the signature
        """
        result = self._call(
            "getSignatureStatuses",
            [signature],
            {"searchTransactionHistory": False},
        )
        statuses = self._value(result, "getSignatureStatuses")
        if not statuses:
            return None
        return statuses[0]

    def confirm_transaction(
        self,
        signature: str,
        last_valid_block_height: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Block until a transaction reaches the client's commitment.

        The wait ends when the block height passes last_valid_block_height
        (the transaction can no longer land) or, if no height is given,
        after confirm_timeout seconds.

        Args:
            signature: Transaction signature
            last_valid_block_height: Expiry height of the signed blockhash

        Returns:
            Final signature status

        Raises:
            LedgerError: If the transaction landed with an error
            LedgerTimeoutError: If it expired before confirming
        """
        deadline = time.monotonic() + self.confirm_timeout

        while True:
            # Height is read before status so a transaction landing in its
            # last valid block is seen as confirmed, not expired.
            height = None
            if last_valid_block_height is not None:
                height = self.get_block_height()

            status = self.get_signature_status(signature)
            if status is not None:
                if status.get("err"):
                    raise LedgerError(
                        f"Transaction {signature} failed on-chain",
                        context={"signature": signature, "err": status.get("err")},
                    )
                if commitment_reached(status, self.commitment):
                    logger.debug(f"Transaction {signature} reached {self.commitment}")
                    return status

            if height is not None:
                if height > last_valid_block_height:
                    raise LedgerTimeoutError(
                        f"Transaction {signature} expired before confirmation",
                        context={
                            "signature": signature,
                            "block_height": height,
                            "last_valid_block_height": last_valid_block_height,
                        },
                    )
            elif time.monotonic() >= deadline:
                raise LedgerTimeoutError(
                    f"Transaction {signature} not confirmed within {self.confirm_timeout}s",
                    context={"signature": signature},
                )

            time.sleep(self.poll_interval)

    def get_program_accounts(
        self,
        program_id: Pubkey,
        filters: Optional[List[Dict[str, Any]]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Scan accounts owned by a program.

        Args:
            program_id: Owning program
            filters: RPC filters (dataSize / memcmp)

        Returns:
            List of {"pubkey": str, "account": {...}} entries, data base64
        """
        config: Dict[str, Any] = {
            "commitment": self.commitment,
            "encoding": "base64",
        }
        if filters:
            config["filters"] = filters

        result = self._call("getProgramAccounts", str(program_id), config)
        if not isinstance(result, list):
            raise LedgerError("getProgramAccounts returned an unexpected shape")
        return result

    def close(self) -> None:
        """Close the connection."""
        self._connection.close()

    # ========================================================================
    # CONTEXT MANAGER
    # ========================================================================

    def __enter__(self) -> "LedgerClient":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
