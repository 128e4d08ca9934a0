"""
epoch_distributor/exceptions.py

Exception hierarchy for the epoch distribution pipeline.

    DistributorError (base)
    ├── ConfigurationError
    ├── OracleError
    ├── ClaimError
    ├── SubmissionError
    ├── ArithmeticOverflowError
    └── LedgerError
        └── LedgerTimeoutError

Every error carries a ``context`` dict so the orchestrator can log
structured fields instead of raw tracebacks.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class DistributorError(Exception):
    """Base exception for all epoch distributor errors."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "original_error": str(self.original_error) if self.original_error else None,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [self.message]
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class ConfigurationError(DistributorError):
    """Missing or invalid configuration value."""
    pass


class OracleError(DistributorError):
    """Price lookup failed or returned an unusable value."""
    pass


class ClaimError(DistributorError):
    """Fee claim request, signing, broadcast or confirmation failed."""
    pass


class ArithmeticOverflowError(DistributorError):
    """An amount does not fit the on-chain integer representation."""
    pass


class LedgerError(DistributorError):
    """Transport or JSON-RPC failure talking to the ledger node."""
    pass


class LedgerTimeoutError(LedgerError):
    """A transaction was not confirmed before its freshness token expired."""
    pass


class SubmissionError(DistributorError):
    """
    A distribution batch failed to broadcast or confirm.

    Batches confirmed before the failure stay on the ledger; their
    signatures are authoritative and are kept on the error.
    """

    def __init__(
        self,
        message: str,
        confirmed_signatures: Optional[List[str]] = None,
        failed_batch_index: Optional[int] = None,
        total_batches: Optional[int] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        self.confirmed_signatures = list(confirmed_signatures or [])
        self.failed_batch_index = failed_batch_index
        self.total_batches = total_batches
        super().__init__(
            message,
            context={
                "confirmed_batches": len(self.confirmed_signatures),
                "failed_batch_index": failed_batch_index,
                "total_batches": total_batches,
                "confirmed_signatures": self.confirmed_signatures,
            },
            original_error=original_error,
        )
