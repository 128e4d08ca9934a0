"""
Tests for epoch_distributor/protocol/epoch.py

Tests the epoch state machine: every gate, completion, partial submission
and failure propagation, with all collaborators mocked.
"""

import logging
from decimal import Decimal
from unittest.mock import Mock, patch

import pytest
from solders.pubkey import Pubkey

from epoch_distributor.blockchain.reward_distributor import RewardDistributor
from epoch_distributor.exceptions import ClaimError, OracleError, SubmissionError
from epoch_distributor.ledger.client import LedgerClient
from epoch_distributor.protocol.epoch import (
    EpochOutcome,
    EpochPhase,
    EpochRunner,
    lamports_to_usd,
)
from epoch_distributor.protocol.fee_claim import ClaimResult
from epoch_distributor.protocol.rewards import HolderBalance
from epoch_distributor.protocol.storage import STATUS_COMPLETED, STATUS_PARTIAL, SummaryStore

from conftest import make_config

EPOCH_ID = "2024-05-01T00:00:00Z"


def make_holders(*amounts):
    return [HolderBalance(owner=Pubkey.new_unique(), amount=a) for a in amounts]


@pytest.fixture
def collaborators(tmp_path):
    """Mocked collaborators for a run that completes."""
    client = Mock()
    client.get_balance.return_value = 1_000_000_000

    oracle = Mock()
    oracle.get_price.return_value = Decimal("100")

    fee_claimer = Mock()
    fee_claimer.claim.return_value = ClaimResult(
        signature="claim-sig",
        claimed_amount=4_000_000_000,
        before_amount=1_000_000_000,
        after_amount=5_000_000_000,
    )

    reserve = Mock()
    reserve.get_balance.side_effect = [0, 2_000_000_000]
    reserve.top_up.return_value = "topup-sig"

    holders = Mock()
    holders.get_holders.return_value = make_holders(1_000, 3_000, 50)

    distributor = Mock()
    distributor.submit.return_value = ["dist-sig-1"]

    return {
        "client": client,
        "oracle": oracle,
        "fee_claimer": fee_claimer,
        "reserve": reserve,
        "holders": holders,
        "distributor": distributor,
        "store": SummaryStore(tmp_path / "epochs.jsonl"),
    }


@pytest.fixture
def runner(tmp_path, collaborators):
    return EpochRunner(make_config(tmp_path), clock=lambda: EPOCH_ID, **collaborators)


# ============================================================================
# COMPLETION TESTS
# ============================================================================

class TestEpochCompletion:
    """Tests for a run that reaches DONE."""

    def test_completed_run_persists_one_summary(self, runner, collaborators):
        outcome = runner.run()

        assert isinstance(outcome, EpochOutcome)
        assert outcome.gated is False
        assert outcome.phase == EpochPhase.DONE
        assert runner.phase == EpochPhase.DONE

        (summary,) = collaborators["store"].read_recent(10)
        assert summary == outcome.summary
        assert summary.epoch_id == EPOCH_ID
        assert summary.price_at_epoch == Decimal("100")
        assert summary.claimed_amount == 4_000_000_000
        assert summary.distribution_amount == 2_000_000_000
        assert summary.reserve_balance_after == 2_000_000_000
        assert summary.eligible_holder_count == 2
        assert summary.transaction_signatures == ["dist-sig-1"]
        assert summary.status == STATUS_COMPLETED

    def test_top_up_uses_distribution_fraction(self, runner, collaborators):
        runner.run()

        creator, amount = collaborators["reserve"].top_up.call_args.args
        assert creator.pubkey() == runner.config.creator.pubkey()
        assert amount == 2_000_000_000

    def test_payouts_batched_from_reserve(self, runner, collaborators):
        runner.run()

        batches, signer = collaborators["distributor"].submit.call_args.args
        assert signer.pubkey() == runner.config.reserve.pubkey()
        payouts = [p for b in batches for p in b.payouts]
        assert [p.amount for p in payouts] == [500_000_000, 1_500_000_000]
        assert all(b.fee_payer == runner.config.reserve.pubkey() for b in batches)

    def test_batch_size_from_config(self, tmp_path, collaborators):
        collaborators["holders"].get_holders.return_value = make_holders(*([1_000] * 5))
        runner = EpochRunner(
            make_config(tmp_path, max_transfers_per_batch=2), clock=lambda: EPOCH_ID, **collaborators
        )

        runner.run()

        batches, _ = collaborators["distributor"].submit.call_args.args
        assert [len(b) for b in batches] == [2, 2, 1]

    def test_threshold_equal_is_not_gated(self, tmp_path, collaborators):
        """creator 0.1 token at $100 = $10, exactly the threshold."""
        collaborators["client"].get_balance.return_value = 100_000_000
        runner = EpochRunner(make_config(tmp_path), clock=lambda: EPOCH_ID, **collaborators)

        assert runner.run().gated is False


# ============================================================================
# GATE TESTS
# ============================================================================

class TestEpochGates:
    """Tests for gated stops: no further side effects, no summary."""

    def test_threshold_gate(self, runner, collaborators, caplog):
        collaborators["oracle"].get_price.return_value = Decimal("1")

        with caplog.at_level(logging.INFO, logger="epoch_distributor.protocol.epoch"):
            outcome = runner.run()

        assert outcome.gated is True
        assert outcome.reason == "threshold"
        assert outcome.phase == EpochPhase.THRESHOLD_CHECK
        collaborators["fee_claimer"].claim.assert_not_called()
        collaborators["reserve"].top_up.assert_not_called()
        assert collaborators["store"].read_recent(10) == []
        assert "gate=threshold" in caplog.text

    def test_dust_gate(self, runner, collaborators):
        collaborators["reserve"].get_balance.side_effect = [0, 10_000]

        outcome = runner.run()

        assert outcome.reason == "dust"
        assert outcome.phase == EpochPhase.RESERVE_BALANCE_CHECK
        collaborators["reserve"].top_up.assert_called_once()
        collaborators["holders"].get_holders.assert_not_called()
        assert collaborators["store"].read_recent(10) == []

    def test_no_eligible_holders_gate(self, runner, collaborators):
        collaborators["holders"].get_holders.return_value = make_holders(1, 99)

        outcome = runner.run()

        assert outcome.reason == "no_eligible_holders"
        assert outcome.phase == EpochPhase.ELIGIBILITY_FILTER
        collaborators["distributor"].submit.assert_not_called()
        assert collaborators["store"].read_recent(10) == []

    def test_empty_payouts_gate(self, runner, collaborators):
        with patch("epoch_distributor.protocol.epoch.compute_payouts", return_value=[]):
            outcome = runner.run()

        assert outcome.reason == "empty_payouts"
        assert outcome.phase == EpochPhase.PAYOUT_COMPUTE
        collaborators["distributor"].submit.assert_not_called()

    def test_gated_outcome_to_dict(self, runner, collaborators):
        collaborators["oracle"].get_price.return_value = Decimal("0.5")
        data = runner.run().to_dict()
        assert data == {
            "epoch_id": EPOCH_ID,
            "phase": "threshold_check",
            "gated": True,
            "reason": "threshold",
            "summary": None,
        }


# ============================================================================
# FAILURE TESTS
# ============================================================================

class TestEpochFailures:
    """Tests for failure propagation."""

    def test_partial_submission_persists_partial_summary(self, runner, collaborators):
        collaborators["distributor"].submit.side_effect = SubmissionError(
            "batch 2 failed",
            confirmed_signatures=["dist-sig-1"],
            failed_batch_index=1,
            total_batches=2,
        )

        with pytest.raises(SubmissionError):
            runner.run()

        (summary,) = collaborators["store"].read_recent(10)
        assert summary.status == STATUS_PARTIAL
        assert summary.transaction_signatures == ["dist-sig-1"]
        assert runner.phase == EpochPhase.SUBMIT

    def test_partial_summary_write_failure_keeps_submission_error(self, runner, collaborators, caplog):
        collaborators["distributor"].submit.side_effect = SubmissionError(
            "batch 2 failed",
            confirmed_signatures=["dist-sig-1"],
            failed_batch_index=1,
            total_batches=2,
        )
        runner.store = Mock(spec=SummaryStore)
        runner.store.append.side_effect = OSError("disk full")

        with pytest.raises(SubmissionError) as exc_info:
            runner.run()

        assert exc_info.value.confirmed_signatures == ["dist-sig-1"]
        assert "could not persist partial summary" in caplog.text
        assert "dist-sig-1" in caplog.text

    def test_submission_failure_without_confirmations(self, runner, collaborators):
        collaborators["distributor"].submit.side_effect = SubmissionError(
            "batch 1 failed", confirmed_signatures=[], failed_batch_index=0, total_batches=1
        )

        with pytest.raises(SubmissionError):
            runner.run()

        assert collaborators["store"].read_recent(10) == []

    def test_oracle_failure_propagates(self, runner, collaborators, caplog):
        collaborators["oracle"].get_price.side_effect = OracleError("price API down")

        with pytest.raises(OracleError):
            runner.run()

        assert runner.phase == EpochPhase.PRICE_LOOKUP
        collaborators["client"].get_balance.assert_not_called()
        assert "price_lookup" in caplog.text

    def test_claim_failure_stops_before_top_up(self, runner, collaborators):
        collaborators["fee_claimer"].claim.side_effect = ClaimError("claim API 500")

        with pytest.raises(ClaimError):
            runner.run()

        assert runner.phase == EpochPhase.FEE_CLAIM
        collaborators["reserve"].top_up.assert_not_called()

    def test_top_up_failure_propagates(self, runner, collaborators):
        collaborators["reserve"].top_up.side_effect = SubmissionError("top-up expired")

        with pytest.raises(SubmissionError):
            runner.run()

        assert runner.phase == EpochPhase.RESERVE_TOPUP
        assert collaborators["store"].read_recent(10) == []


# ============================================================================
# WIRING TESTS
# ============================================================================

class TestEpochRunnerWiring:
    """Tests for from_config and helpers."""

    def test_from_config(self, app_config):
        runner = EpochRunner.from_config(app_config)

        assert isinstance(runner.client, LedgerClient)
        assert runner.client.commitment == app_config.commitment
        assert isinstance(runner.distributor, RewardDistributor)
        assert runner.reserve.address == app_config.reserve.pubkey()
        assert runner.store.path == app_config.summary_path
        runner.close()

    def test_lamports_to_usd(self):
        assert lamports_to_usd(1_500_000_000, Decimal("100")) == Decimal("150")
        assert lamports_to_usd(1, Decimal("1")) == Decimal("1E-9")
