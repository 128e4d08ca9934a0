"""
epoch_distributor/protocol/holders.py

Token holder enumeration.

Scans every SPL token account of the mint and aggregates balances per
owner. Token account layout (165 bytes):

    0..32   mint
    32..64  owner
    64..72  amount (u64, little-endian)
    72..    delegate, state, ...

Owners are returned sorted by their base58 string so the payout order is
stable between runs.
"""

import base64
import logging
import struct
from typing import Any, Dict, List

from solders.pubkey import Pubkey

from ..exceptions import LedgerError
from ..ledger.client import LedgerClient
from .rewards import HolderBalance

logger = logging.getLogger("epoch_distributor.protocol.holders")


# SPL token program
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")

TOKEN_ACCOUNT_SIZE = 165
OWNER_OFFSET = 32
AMOUNT_OFFSET = 64


def decode_token_account(data: bytes) -> HolderBalance:
    """
    Decode owner and amount from raw token account data.

    Raises:
        ValueError: If data is shorter than a token account
    """
    if len(data) < AMOUNT_OFFSET + 8:
        raise ValueError(f"token account data too short: {len(data)} bytes")
    owner = Pubkey.from_bytes(data[OWNER_OFFSET:OWNER_OFFSET + 32])
    (amount,) = struct.unpack_from("<Q", data, AMOUNT_OFFSET)
    return HolderBalance(owner=owner, amount=amount)


def _account_data(entry: Dict[str, Any]) -> bytes:
    data = entry["account"]["data"]
    # base64 encoding comes back as [payload, "base64"]
    if isinstance(data, list):
        data = data[0]
    return base64.b64decode(data)


class HolderEnumerator:
    """
    Lists current holders of a token with their aggregated balances.

    Example:
        enumerator = HolderEnumerator(ledger_client)
        holders = enumerator.get_holders(mint)
    """

    def __init__(self, client: LedgerClient):
        self.client = client

    def get_holders(self, mint: Pubkey) -> List[HolderBalance]:
        """
        Get all owners with a non-zero balance of mint.

        Args:
            mint: Token mint address

        Returns:
            One HolderBalance per owner, sorted by base58 owner

        Raises:
            LedgerError: If the scan fails or returns undecodable data
        """
        accounts = self.client.get_program_accounts(
            TOKEN_PROGRAM_ID,
            filters=[
                {"dataSize": TOKEN_ACCOUNT_SIZE},
                {"memcmp": {"offset": 0, "bytes": str(mint)}},
            ],
        )

        totals: Dict[Pubkey, int] = {}
        for entry in accounts:
            try:
                balance = decode_token_account(_account_data(entry))
            except (KeyError, TypeError, ValueError) as e:
                raise LedgerError(
                    "Undecodable token account in program scan",
                    context={"pubkey": entry.get("pubkey") if isinstance(entry, dict) else None},
                    original_error=e,
                )
            if balance.amount == 0:
                continue
            totals[balance.owner] = totals.get(balance.owner, 0) + balance.amount

        holders = [
            HolderBalance(owner=owner, amount=amount)
            for owner, amount in sorted(totals.items(), key=lambda item: str(item[0]))
        ]
        logger.info(
            f"Enumerated {len(holders)} holders from {len(accounts)} token accounts "
            f"(mint={mint})"
        )
        return holders
