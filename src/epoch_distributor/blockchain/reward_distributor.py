"""
epoch_distributor/blockchain/reward_distributor.py

Sequential submit-and-confirm protocol for distribution batches.

Each batch goes through, strictly in order:
    PREPARE    fetch a fresh blockhash right before signing
    SIGN       sign locally with the fee payer
    BROADCAST  send the signed transaction to the node
    CONFIRM    wait for the commitment level or the blockhash expiry

Batch b+1 is not prepared until batch b is confirmed or has failed.
On the first failure the run stops with SubmissionError; batches already
confirmed cannot be rolled back, and their signatures travel on the error.

Usage:
    from epoch_distributor.blockchain.reward_distributor import RewardDistributor

    distributor = RewardDistributor(ledger_client)
    signatures = distributor.submit(batches, reserve_keypair)
"""

import logging
from enum import Enum
from typing import Callable, List, Optional, Sequence

from solders.instruction import Instruction
from solders.keypair import Keypair

from ..exceptions import DistributorError, SubmissionError
from ..ledger.client import LedgerClient
from .tx_builder import TransactionBatch, sign_batch, sign_instructions

logger = logging.getLogger("epoch_distributor.blockchain.reward_distributor")


class SubmissionPhase(Enum):
    """Phases a single batch passes through."""
    PREPARE = "prepare"
    SIGN = "sign"
    BROADCAST = "broadcast"
    CONFIRM = "confirm"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class RewardDistributor:
    """
    Submits distribution batches one at a time and records confirmations.
    """

    def __init__(
        self,
        client: LedgerClient,
        on_confirmed: Optional[Callable[[int, str], None]] = None,
    ):
        """
        Initialize RewardDistributor.

        Args:
            client: Ledger client used for blockhash, broadcast and confirm
            on_confirmed: Optional callback(batch_index, signature) fired as
                each batch confirms
        """
        self.client = client
        self._on_confirmed = on_confirmed
        self._phase = SubmissionPhase.PREPARE
        self._failed_phase = SubmissionPhase.PREPARE

    @property
    def phase(self) -> SubmissionPhase:
        """Phase of the batch currently (or last) being processed."""
        return self._phase

    def submit(self, batches: Sequence[TransactionBatch], signer: Keypair) -> List[str]:
        """
        Submit batches sequentially.

        Args:
            batches: Batches in distribution order
            signer: Fee payer of every batch

        Returns:
            Signatures of confirmed batches, in batch order

        Raises:
            SubmissionError: On the first batch that fails to sign,
                broadcast or confirm. confirmed_signatures lists the
                batches that made it.
        """
        signatures: List[str] = []
        total = len(batches)

        for index, batch in enumerate(batches):
            try:
                signature = self._submit_one(
                    lambda blockhash: sign_batch(batch, signer, blockhash),
                    label=f"batch {index + 1}/{total}",
                )
            except (DistributorError, ValueError) as e:
                self._phase = SubmissionPhase.FAILED
                logger.error(
                    f"Distribution batch {index + 1}/{total} failed in phase "
                    f"{self._failed_phase.value}: {e} "
                    f"(confirmed_batches={len(signatures)})"
                )
                raise SubmissionError(
                    f"Batch {index + 1} of {total} failed during {self._failed_phase.value}",
                    confirmed_signatures=signatures,
                    failed_batch_index=index,
                    total_batches=total,
                    original_error=e,
                )

            signatures.append(signature)
            self._phase = SubmissionPhase.CONFIRMED
            logger.info(
                f"Batch {index + 1}/{total} confirmed: signature={signature} "
                f"transfers={len(batch)} amount={batch.total_amount}"
            )
            if self._on_confirmed:
                self._on_confirmed(index, signature)

        return signatures

    def send_and_confirm(
        self,
        instructions: Sequence[Instruction],
        signer: Keypair,
        label: str = "transaction",
    ) -> str:
        """
        Run one ad-hoc transaction through prepare/sign/broadcast/confirm.

        Args:
            instructions: Instructions to execute
            signer: Fee payer and sole signer
            label: Name used in logs and errors

        Returns:
            Confirmed signature

        Raises:
            SubmissionError: If broadcast or confirmation fails
        """
        try:
            return self._submit_one(
                lambda blockhash: sign_instructions(instructions, signer, blockhash),
                label=label,
            )
        except (DistributorError, ValueError) as e:
            self._phase = SubmissionPhase.FAILED
            raise SubmissionError(
                f"{label} failed during {self._failed_phase.value}",
                failed_batch_index=0,
                total_batches=1,
                original_error=e,
            )

    # ========================================================================
    # INTERNAL METHODS
    # ========================================================================

    def _submit_one(self, sign: Callable, label: str) -> str:
        """Prepare, sign, broadcast and confirm a single transaction."""
        self._enter(SubmissionPhase.PREPARE)
        token = self.client.get_latest_blockhash()

        self._enter(SubmissionPhase.SIGN)
        transaction = sign(token.blockhash)

        self._enter(SubmissionPhase.BROADCAST)
        signature = self.client.send_transaction(bytes(transaction))
        logger.debug(
            f"{label} broadcast: signature={signature} "
            f"last_valid_block_height={token.last_valid_block_height}"
        )

        self._enter(SubmissionPhase.CONFIRM)
        self.client.confirm_transaction(signature, token.last_valid_block_height)
        return signature

    def _enter(self, phase: SubmissionPhase) -> None:
        self._phase = phase
        self._failed_phase = phase

