"""
epoch_distributor/blockchain/tx_builder.py

Transaction building for reward distribution.

Groups payouts into bounded-size batches of system-program transfers and
signs them against a freshness token. Supports:
- Multi-recipient batching (bounded instruction count per transaction)
- u64 range checks before any amount is encoded
- Deterministic, order-preserving batch layout

Batching is pure: no network access and no signing happen until a batch
is handed to sign_batch() by the submission protocol.
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from ..config import DEFAULT_MAX_TRANSFERS_PER_BATCH
from ..exceptions import ArithmeticOverflowError
from ..protocol.rewards import Payout

logger = logging.getLogger("epoch_distributor.blockchain.tx_builder")


# ============================================================================
# CONSTANTS
# ============================================================================

U64_MAX = 2**64 - 1  # Largest lamport amount a transfer can encode


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class TransactionBatch:
    """An ordered group of transfers paid for by one fee payer."""
    fee_payer: Pubkey
    payouts: Tuple[Payout, ...]
    instructions: Tuple[Instruction, ...]

    @property
    def total_amount(self) -> int:
        return sum(p.amount for p in self.payouts)

    def __len__(self) -> int:
        return len(self.instructions)

    def to_dict(self) -> dict:
        return {
            "fee_payer": str(self.fee_payer),
            "transfers": len(self.instructions),
            "total_amount": str(self.total_amount),
            "payouts": [p.to_dict() for p in self.payouts],
        }


# ============================================================================
# INSTRUCTIONS
# ============================================================================

def ensure_u64(amount: int, label: str = "amount") -> int:
    """
    Check an amount fits the on-chain u64 range.

    Raises:
        ArithmeticOverflowError: If amount is negative or above U64_MAX
    """
    if amount < 0 or amount > U64_MAX:
        raise ArithmeticOverflowError(
            f"{label} {amount} is outside the u64 range",
            context={"label": label, "amount": str(amount)},
        )
    return amount


def build_transfer_instruction(source: Pubkey, destination: Pubkey, amount: int) -> Instruction:
    """Build a system-program transfer of amount lamports."""
    return transfer(
        TransferParams(
            from_pubkey=source,
            to_pubkey=destination,
            lamports=ensure_u64(amount, "transfer amount"),
        )
    )


# ============================================================================
# BATCHING
# ============================================================================

def batch_payouts(
    payouts: Sequence[Payout],
    fee_payer: Pubkey,
    max_per_batch: int = DEFAULT_MAX_TRANSFERS_PER_BATCH,
) -> List[TransactionBatch]:
    """
    Partition payouts into consecutive batches of at most max_per_batch.

    Concatenating the batches' payouts reproduces the input exactly.
    An empty payout list yields no batches.

    Args:
        payouts: Payouts in distribution order
        fee_payer: Account funding the transfers and paying fees
        max_per_batch: Transfer instructions per transaction

    Returns:
        List of TransactionBatch
    """
    if max_per_batch <= 0:
        raise ValueError(f"max_per_batch must be positive, got {max_per_batch}")

    batches = []
    for start in range(0, len(payouts), max_per_batch):
        group = tuple(payouts[start:start + max_per_batch])
        instructions = tuple(
            build_transfer_instruction(fee_payer, p.owner, p.amount) for p in group
        )
        batches.append(
            TransactionBatch(fee_payer=fee_payer, payouts=group, instructions=instructions)
        )

    if batches:
        logger.info(
            f"Built {len(batches)} distribution batches for {len(payouts)} payouts "
            f"(max {max_per_batch} per batch)"
        )
    return batches


# ============================================================================
# SIGNING
# ============================================================================

def sign_instructions(
    instructions: Sequence[Instruction],
    signer: Keypair,
    blockhash: Hash,
) -> Transaction:
    """
    Compile and sign a transaction with signer as fee payer.

    Args:
        instructions: Instructions in execution order
        signer: Fee payer and sole required signer
        blockhash: Recent blockhash from a freshness token

    Returns:
        Signed legacy Transaction
    """
    message = Message.new_with_blockhash(list(instructions), signer.pubkey(), blockhash)
    return Transaction([signer], message, blockhash)


def sign_batch(batch: TransactionBatch, signer: Keypair, blockhash: Hash) -> Transaction:
    """
    Sign a distribution batch.

    Raises:
        ValueError: If signer is not the batch's fee payer
    """
    if signer.pubkey() != batch.fee_payer:
        raise ValueError(
            f"Signer {signer.pubkey()} does not match batch fee payer {batch.fee_payer}"
        )
    return sign_instructions(batch.instructions, signer, blockhash)
