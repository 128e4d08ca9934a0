"""
epoch_distributor/blockchain/

Transaction building and submission for reward distribution.

Batches payouts into bounded-size transfer transactions and submits them
sequentially against fresh blockhashes.
"""

from .tx_builder import (
    TransactionBatch,
    batch_payouts,
    build_transfer_instruction,
    ensure_u64,
    sign_batch,
    sign_instructions,
    U64_MAX,
)

from .reward_distributor import (
    RewardDistributor,
    SubmissionPhase,
)

__all__ = [
    # Transaction building
    "TransactionBatch",
    "batch_payouts",
    "build_transfer_instruction",
    "ensure_u64",
    "sign_batch",
    "sign_instructions",
    "U64_MAX",
    # Submission
    "RewardDistributor",
    "SubmissionPhase",
]
