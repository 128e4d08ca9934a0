"""
epoch_distributor/config.py

Configuration constants and the immutable AppConfig for epoch_distributor.

AppConfig is resolved once from the environment at process start and
passed explicitly into every component:

    from epoch_distributor.config import load_config

    config = load_config()          # reads os.environ
    runner = EpochRunner.from_config(config)
"""

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Mapping, Optional

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .exceptions import ConfigurationError


# Native token smallest units per whole token (lamports per SOL)
NATIVE_UNITS_PER_TOKEN = 1_000_000_000

# Reserve balance at or below which distribution is skipped (~0.00001 SOL)
DUST_THRESHOLD = 10_000

# Transfer instructions per distribution transaction
DEFAULT_MAX_TRANSFERS_PER_BATCH = 12

# Ledger commitment level used for reads and confirmations
DEFAULT_COMMITMENT = "confirmed"
VALID_COMMITMENTS = ("processed", "confirmed", "finalized")

# HTTP timeout for RPC, price and claim requests (seconds)
DEFAULT_REQUEST_TIMEOUT = 30.0

# Summary log location
DEFAULT_SUMMARY_PATH = Path("data") / "epochs.jsonl"

# Monitoring dashboard
DEFAULT_MONITOR_PORT = 8787
DEFAULT_MONITOR_LIMIT = 50

# Secret key + public key, as exported by wallet tooling
SECRET_KEY_LENGTH = 64


@dataclass(frozen=True)
class EligibilityBand:
    """Inclusive token-balance band a holder must fall within."""
    min_balance: int = 0
    max_balance: Optional[int] = None  # None = no upper bound


@dataclass(frozen=True)
class AppConfig:
    """Process-wide configuration. Never mutated after load."""
    rpc_endpoint: str
    token_mint: Pubkey
    creator: Keypair
    reserve: Keypair
    usd_threshold: Decimal
    distribution_fraction: Decimal
    min_eligible_balance: int
    max_eligible_balance: Optional[int]
    fee_claim_url: str
    price_api_url: str
    summary_path: Path = DEFAULT_SUMMARY_PATH
    max_transfers_per_batch: int = DEFAULT_MAX_TRANSFERS_PER_BATCH
    commitment: str = DEFAULT_COMMITMENT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    @property
    def eligibility_band(self) -> EligibilityBand:
        return EligibilityBand(
            min_balance=self.min_eligible_balance,
            max_balance=self.max_eligible_balance,
        )

    def describe(self) -> dict:
        """Non-secret view of the config, safe to log."""
        return {
            "rpc_endpoint": self.rpc_endpoint,
            "token_mint": str(self.token_mint),
            "creator": str(self.creator.pubkey()),
            "reserve": str(self.reserve.pubkey()),
            "usd_threshold": str(self.usd_threshold),
            "distribution_fraction": str(self.distribution_fraction),
            "min_eligible_balance": self.min_eligible_balance,
            "max_eligible_balance": self.max_eligible_balance,
            "max_transfers_per_batch": self.max_transfers_per_batch,
            "commitment": self.commitment,
            "summary_path": str(self.summary_path),
        }


# ============================================================================
# ENVIRONMENT PARSING
# ============================================================================

def _require_string(env: Mapping[str, str], key: str) -> str:
    value = env.get(key)
    if not value:
        raise ConfigurationError(f"Missing required env var {key}", context={"key": key})
    return value


def _require_decimal(
    env: Mapping[str, str],
    key: str,
    minimum: Optional[Decimal] = None,
    maximum: Optional[Decimal] = None,
) -> Decimal:
    raw = _require_string(env, key)
    try:
        value = Decimal(raw.strip())
    except InvalidOperation:
        raise ConfigurationError(f"Env var {key} must be a number", context={"key": key})
    if not value.is_finite():
        raise ConfigurationError(f"Env var {key} must be a finite number", context={"key": key})
    if minimum is not None and value < minimum:
        raise ConfigurationError(f"Env var {key} must be >= {minimum}", context={"key": key})
    if maximum is not None and value > maximum:
        raise ConfigurationError(f"Env var {key} must be <= {maximum}", context={"key": key})
    return value


def _parse_int(key: str, raw: str, minimum: Optional[int] = None) -> int:
    try:
        value = int(raw.strip())
    except ValueError:
        raise ConfigurationError(f"Env var {key} must be an integer", context={"key": key})
    if minimum is not None and value < minimum:
        raise ConfigurationError(f"Env var {key} must be >= {minimum}", context={"key": key})
    return value


def _decode_keypair(env: Mapping[str, str], key: str) -> Keypair:
    secret = _require_string(env, key)
    try:
        raw = base58.b58decode(secret.strip())
    except ValueError as e:
        raise ConfigurationError(
            f"Failed to decode base58 keypair for {key}",
            context={"key": key},
            original_error=e,
        )
    if len(raw) != SECRET_KEY_LENGTH:
        raise ConfigurationError(
            f"Keypair for {key} must be {SECRET_KEY_LENGTH} bytes, got {len(raw)}",
            context={"key": key},
        )
    try:
        return Keypair.from_bytes(raw)
    except Exception as e:
        raise ConfigurationError(
            f"Invalid keypair bytes for {key}", context={"key": key}, original_error=e
        )


def _decode_pubkey(env: Mapping[str, str], key: str) -> Pubkey:
    raw = _require_string(env, key)
    try:
        return Pubkey.from_string(raw.strip())
    except Exception as e:
        raise ConfigurationError(
            f"Env var {key} is not a valid address", context={"key": key}, original_error=e
        )


def load_config(env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """
    Build an AppConfig from environment variables.

    Args:
        env: Mapping to read from (defaults to os.environ)

    Returns:
        Validated AppConfig

    Raises:
        ConfigurationError: On any missing or invalid value
    """
    if env is None:
        env = os.environ

    max_eligible: Optional[int] = None
    raw_max = env.get("MAX_ELIGIBLE_BALANCE", "").strip()
    if raw_max and raw_max != "0":
        max_eligible = _parse_int("MAX_ELIGIBLE_BALANCE", raw_max, minimum=0)

    min_eligible = _parse_int(
        "MIN_ELIGIBLE_BALANCE", _require_string(env, "MIN_ELIGIBLE_BALANCE"), minimum=0
    )
    if max_eligible is not None and max_eligible < min_eligible:
        raise ConfigurationError(
            "MAX_ELIGIBLE_BALANCE must be >= MIN_ELIGIBLE_BALANCE",
            context={"min": min_eligible, "max": max_eligible},
        )

    max_per_batch = DEFAULT_MAX_TRANSFERS_PER_BATCH
    if env.get("MAX_TRANSFERS_PER_BATCH"):
        max_per_batch = _parse_int(
            "MAX_TRANSFERS_PER_BATCH", env["MAX_TRANSFERS_PER_BATCH"], minimum=1
        )

    commitment = env.get("COMMITMENT", DEFAULT_COMMITMENT).strip().lower()
    if commitment not in VALID_COMMITMENTS:
        raise ConfigurationError(
            f"Invalid COMMITMENT: {commitment}. Valid options: {', '.join(VALID_COMMITMENTS)}",
            context={"key": "COMMITMENT"},
        )

    request_timeout = DEFAULT_REQUEST_TIMEOUT
    if env.get("REQUEST_TIMEOUT"):
        request_timeout = float(
            _require_decimal(env, "REQUEST_TIMEOUT", minimum=Decimal("0.1"))
        )

    return AppConfig(
        rpc_endpoint=_require_string(env, "RPC_ENDPOINT"),
        token_mint=_decode_pubkey(env, "TOKEN_MINT"),
        creator=_decode_keypair(env, "CREATOR_SECRET_B58"),
        reserve=_decode_keypair(env, "RESERVE_SECRET_B58"),
        usd_threshold=_require_decimal(env, "USD_THRESHOLD", minimum=Decimal(0)),
        distribution_fraction=_require_decimal(
            env, "DISTRIBUTION_PERCENT", minimum=Decimal(0), maximum=Decimal(1)
        ),
        min_eligible_balance=min_eligible,
        max_eligible_balance=max_eligible,
        fee_claim_url=_require_string(env, "FEE_CLAIM_URL"),
        price_api_url=_require_string(env, "PRICE_API_URL"),
        summary_path=Path(env.get("SUMMARY_PATH") or DEFAULT_SUMMARY_PATH),
        max_transfers_per_batch=max_per_batch,
        commitment=commitment,
        request_timeout=request_timeout,
    )


def get_monitor_port(env: Optional[Mapping[str, str]] = None) -> int:
    """Dashboard port from MONITOR_PORT."""
    if env is None:
        env = os.environ
    raw = env.get("MONITOR_PORT")
    if not raw:
        return DEFAULT_MONITOR_PORT
    return _parse_int("MONITOR_PORT", raw, minimum=1)


def get_summary_path(env: Optional[Mapping[str, str]] = None) -> Path:
    """Summary log path from SUMMARY_PATH, without loading secrets."""
    if env is None:
        env = os.environ
    return Path(env.get("SUMMARY_PATH") or DEFAULT_SUMMARY_PATH)
