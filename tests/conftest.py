"""
Shared fixtures for epoch_distributor tests.
"""

from decimal import Decimal
from pathlib import Path

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from epoch_distributor.config import AppConfig


def make_keypair(seed: int) -> Keypair:
    """Deterministic keypair from a one-byte seed."""
    return Keypair.from_seed(bytes([seed]) * 32)


def make_config(tmp_path: Path = None, **overrides) -> AppConfig:
    """Build an AppConfig with test defaults."""
    values = dict(
        rpc_endpoint="http://localhost:8899",
        token_mint=Pubkey.new_unique(),
        creator=make_keypair(1),
        reserve=make_keypair(2),
        usd_threshold=Decimal("10"),
        distribution_fraction=Decimal("0.5"),
        min_eligible_balance=100,
        max_eligible_balance=None,
        fee_claim_url="http://claim.test/api",
        price_api_url="http://price.test/v6/price",
        summary_path=(tmp_path or Path("data")) / "epochs.jsonl",
        max_transfers_per_batch=12,
    )
    values.update(overrides)
    return AppConfig(**values)


@pytest.fixture
def creator():
    return make_keypair(1)


@pytest.fixture
def reserve_keypair():
    return make_keypair(2)


@pytest.fixture
def app_config(tmp_path):
    return make_config(tmp_path)
