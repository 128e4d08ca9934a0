"""
epoch_distributor/protocol/reserve.py

Rewards reserve: the account that accumulates the distributable share of
claimed fees and pays out each epoch.
"""

import logging
from typing import Optional

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from ..blockchain.reward_distributor import RewardDistributor
from ..blockchain.tx_builder import build_transfer_instruction
from ..ledger.client import LedgerClient

logger = logging.getLogger("epoch_distributor.protocol.reserve")


class RewardsReserve:
    """Balance reads and top-ups of the reserve account."""

    def __init__(self, client: LedgerClient, distributor: RewardDistributor, address: Pubkey):
        self.client = client
        self.distributor = distributor
        self.address = address

    def get_balance(self) -> int:
        """Current reserve balance in lamports."""
        return self.client.get_balance(self.address)

    def top_up(self, source: Keypair, amount: int) -> Optional[str]:
        """
        Transfer amount lamports from source into the reserve.

        source signs and pays the fee. A non-positive amount is a no-op.

        Returns:
            Confirmed signature, or None when nothing was sent

        Raises:
            SubmissionError: If the transfer fails to broadcast or confirm
            ArithmeticOverflowError: If amount exceeds the u64 range
        """
        if amount <= 0:
            logger.debug(f"Skipping reserve top-up: amount={amount}")
            return None

        instruction = build_transfer_instruction(source.pubkey(), self.address, amount)
        signature = self.distributor.send_and_confirm(
            [instruction], source, label="reserve top-up"
        )
        logger.info(
            f"Reserve topped up: amount={amount} reserve={self.address} signature={signature}"
        )
        return signature
