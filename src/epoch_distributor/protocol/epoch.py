"""
epoch_distributor/protocol/epoch.py

Epoch orchestration: one run of the claim, top-up and distribute pipeline.

This module drives a single epoch as a plain sequential state machine:
1. Look up the native token's USD price
2. Gate on the USD value of creator + reserve balances
3. Claim creator fees
4. Move the configured fraction of the claim into the reserve
5. Gate on the reserve balance (dust threshold)
6. Enumerate holders and filter by the eligibility band
7. Compute proportional payouts and batch them
8. Submit batches sequentially
9. Persist the epoch summary

Gated stops are normal outcomes: they are logged with the gate name and
leave no summary behind. Failures are logged with structured context and
propagate to the caller.

Usage:
    from epoch_distributor.config import load_config
    from epoch_distributor.protocol.epoch import EpochRunner

    runner = EpochRunner.from_config(load_config())
    outcome = runner.run()
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable, Optional

from ..blockchain.reward_distributor import RewardDistributor
from ..blockchain.tx_builder import batch_payouts
from ..config import DUST_THRESHOLD, NATIVE_UNITS_PER_TOKEN, AppConfig
from ..exceptions import DistributorError, SubmissionError
from ..ledger.client import LedgerClient
from .fee_claim import FeeClaimAdapter
from .holders import HolderEnumerator
from .pricing import JupiterPriceOracle
from .reserve import RewardsReserve
from .rewards import compute_payouts, filter_eligible_holders, percent_of
from .storage import STATUS_COMPLETED, STATUS_PARTIAL, EpochSummary, SummaryStore

logger = logging.getLogger("epoch_distributor.protocol.epoch")


# ============================================================================
# DATA STRUCTURES
# ============================================================================

class EpochPhase(Enum):
    """Phases of one epoch run."""
    START = "start"
    PRICE_LOOKUP = "price_lookup"
    THRESHOLD_CHECK = "threshold_check"
    FEE_CLAIM = "fee_claim"
    RESERVE_TOPUP = "reserve_topup"
    RESERVE_BALANCE_CHECK = "reserve_balance_check"
    HOLDER_ENUMERATION = "holder_enumeration"
    ELIGIBILITY_FILTER = "eligibility_filter"
    PAYOUT_COMPUTE = "payout_compute"
    BATCH = "batch"
    SUBMIT = "submit"
    SUMMARY_PERSIST = "summary_persist"
    DONE = "done"


@dataclass
class EpochOutcome:
    """Terminal state of an epoch run that did not raise."""
    epoch_id: str
    phase: EpochPhase
    gated: bool
    reason: str
    summary: Optional[EpochSummary] = None

    def to_dict(self) -> dict:
        return {
            "epoch_id": self.epoch_id,
            "phase": self.phase.value,
            "gated": self.gated,
            "reason": self.reason,
            "summary": self.summary.to_dict() if self.summary else None,
        }


def lamports_to_usd(lamports: int, price: Decimal) -> Decimal:
    """USD value of a native amount at price (USD per whole token)."""
    return Decimal(lamports) * price / NATIVE_UNITS_PER_TOKEN


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# ============================================================================
# EPOCH RUNNER
# ============================================================================

class EpochRunner:
    """
    Runs one epoch against explicitly supplied collaborators.

    Every collaborator is injected, so tests can substitute mocks for the
    ledger, price API and claim API.
    """

    def __init__(
        self,
        config: AppConfig,
        client: LedgerClient,
        oracle: JupiterPriceOracle,
        fee_claimer: FeeClaimAdapter,
        reserve: RewardsReserve,
        holders: HolderEnumerator,
        distributor: RewardDistributor,
        store: SummaryStore,
        clock: Callable[[], str] = _utc_now,
    ):
        """
        Initialize EpochRunner.

        Args:
            config: Immutable process configuration
            client: Ledger client (creator balance reads)
            oracle: USD price source
            fee_claimer: Creator fee claim adapter
            reserve: Reserve balance reader and top-up
            holders: Token holder enumerator
            distributor: Sequential batch submitter
            store: Summary log
            clock: Returns the current ISO-8601 UTC timestamp
        """
        self.config = config
        self.client = client
        self.oracle = oracle
        self.fee_claimer = fee_claimer
        self.reserve = reserve
        self.holders = holders
        self.distributor = distributor
        self.store = store
        self._clock = clock
        self._phase = EpochPhase.START

    @classmethod
    def from_config(cls, config: AppConfig) -> "EpochRunner":
        """Wire up production collaborators from config."""
        client = LedgerClient(
            config.rpc_endpoint,
            commitment=config.commitment,
            timeout=config.request_timeout,
        )
        distributor = RewardDistributor(client)
        return cls(
            config=config,
            client=client,
            oracle=JupiterPriceOracle(config.price_api_url, timeout=config.request_timeout),
            fee_claimer=FeeClaimAdapter(
                client, config.fee_claim_url, timeout=config.request_timeout
            ),
            reserve=RewardsReserve(client, distributor, config.reserve.pubkey()),
            holders=HolderEnumerator(client),
            distributor=distributor,
            store=SummaryStore(config.summary_path),
        )

    @property
    def phase(self) -> EpochPhase:
        return self._phase

    def run(self) -> EpochOutcome:
        """
        Run one epoch.

        Returns:
            EpochOutcome with gated=True for a gated stop, or the persisted
            summary on completion

        Raises:
            DistributorError: Any failure, after logging its context
        """
        epoch_id = self._clock()
        self._phase = EpochPhase.START
        logger.info(f"Epoch {epoch_id} starting")

        try:
            return self._run(epoch_id)
        except DistributorError as e:
            logger.error(
                f"Epoch {epoch_id} failed in phase {self._phase.value}: {e.to_dict()}"
            )
            raise

    def close(self) -> None:
        """Release HTTP sessions held by collaborators."""
        self.oracle.close()
        self.fee_claimer.close()
        self.client.close()

    # ========================================================================
    # INTERNAL METHODS
    # ========================================================================

    def _run(self, epoch_id: str) -> EpochOutcome:
        config = self.config

        self._phase = EpochPhase.PRICE_LOOKUP
        price = self.oracle.get_price()
        creator_before = self.client.get_balance(config.creator.pubkey())
        reserve_before = self.reserve.get_balance()

        self._phase = EpochPhase.THRESHOLD_CHECK
        pre_claim_usd = lamports_to_usd(creator_before + reserve_before, price)
        logger.info(
            f"Pre-claim balances: price={price} creator={creator_before} "
            f"reserve={reserve_before} usd={pre_claim_usd}"
        )
        if pre_claim_usd < config.usd_threshold:
            return self._gate(
                epoch_id,
                "threshold",
                f"pre-claim value ${pre_claim_usd} below threshold ${config.usd_threshold}",
            )

        self._phase = EpochPhase.FEE_CLAIM
        claim = self.fee_claimer.claim(config.token_mint, config.creator)
        distribution_amount = percent_of(claim.claimed_amount, config.distribution_fraction)
        logger.info(
            f"Creator fees claimed: signature={claim.signature} "
            f"claimed={claim.claimed_amount} distribution={distribution_amount}"
        )

        self._phase = EpochPhase.RESERVE_TOPUP
        self.reserve.top_up(config.creator, distribution_amount)

        self._phase = EpochPhase.RESERVE_BALANCE_CHECK
        reserve_balance = self.reserve.get_balance()
        if reserve_balance <= DUST_THRESHOLD:
            return self._gate(
                epoch_id,
                "dust",
                f"reserve balance {reserve_balance} at or below dust threshold {DUST_THRESHOLD}",
                level=logging.WARNING,
            )

        self._phase = EpochPhase.HOLDER_ENUMERATION
        holders = self.holders.get_holders(config.token_mint)

        self._phase = EpochPhase.ELIGIBILITY_FILTER
        eligible = filter_eligible_holders(holders, config.eligibility_band)
        if not eligible:
            return self._gate(
                epoch_id,
                "no_eligible_holders",
                f"no eligible holders among {len(holders)}; rewards stay in reserve",
                level=logging.WARNING,
            )

        self._phase = EpochPhase.PAYOUT_COMPUTE
        payouts = compute_payouts(eligible, reserve_balance)
        if not payouts:
            return self._gate(
                epoch_id,
                "empty_payouts",
                "computed payouts are empty; rewards stay in reserve",
                level=logging.WARNING,
            )

        self._phase = EpochPhase.BATCH
        batches = batch_payouts(
            payouts, config.reserve.pubkey(), config.max_transfers_per_batch
        )
        if not batches:
            return self._gate(
                epoch_id, "no_batches", "no distribution batches built",
                level=logging.WARNING,
            )

        self._phase = EpochPhase.SUBMIT
        summary = EpochSummary(
            epoch_id=epoch_id,
            timestamp=epoch_id,
            price_at_epoch=price,
            claimed_amount=claim.claimed_amount,
            distribution_amount=distribution_amount,
            reserve_balance_after=reserve_balance,
            eligible_holder_count=len(eligible),
        )
        try:
            signatures = self.distributor.submit(batches, config.reserve)
        except SubmissionError as e:
            if e.confirmed_signatures:
                summary.timestamp = self._clock()
                summary.transaction_signatures = list(e.confirmed_signatures)
                summary.status = STATUS_PARTIAL
                try:
                    self.store.append(summary)
                except OSError as store_error:
                    logger.error(
                        f"Epoch {epoch_id} could not persist partial summary: {store_error} "
                        f"confirmed_signatures={summary.transaction_signatures}"
                    )
            raise

        self._phase = EpochPhase.SUMMARY_PERSIST
        summary.timestamp = self._clock()
        summary.transaction_signatures = signatures
        summary.status = STATUS_COMPLETED
        self.store.append(summary)

        self._phase = EpochPhase.DONE
        logger.info(
            f"Epoch {epoch_id} completed: batches={len(signatures)} "
            f"payouts={len(payouts)} distributed={sum(p.amount for p in payouts)}"
        )
        return EpochOutcome(
            epoch_id=epoch_id,
            phase=EpochPhase.DONE,
            gated=False,
            reason="completed",
            summary=summary,
        )

    def _gate(
        self,
        epoch_id: str,
        gate: str,
        reason: str,
        level: int = logging.INFO,
    ) -> EpochOutcome:
        logger.log(level, f"Epoch {epoch_id} stopped: gate={gate} phase={self._phase.value} {reason}")
        return EpochOutcome(
            epoch_id=epoch_id,
            phase=self._phase,
            gated=True,
            reason=gate,
        )
