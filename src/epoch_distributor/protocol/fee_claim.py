"""
epoch_distributor/protocol/fee_claim.py

Creator fee claim through the launch platform's trade API.

The platform builds the claim transaction; we only sign it with the
creator identity, broadcast it, and measure the creator's balance change:

    before = balance(creator)
    POST {"action": "collectCreatorFee", "mint": ..., "creator": ...}
        -> {"transaction": "<base64>"}
    sign, broadcast (preflight on, 3 node retries), confirm
    after = balance(creator)
    claimed = max(after - before, 0)

The claimed amount is net of the claim's own fee, which is what the
creator actually has available for the reserve top-up.
"""

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Optional, Union

import requests
from solders.keypair import Keypair
from solders.message import to_bytes_versioned
from solders.pubkey import Pubkey
from solders.transaction import Transaction, VersionedTransaction

from ..config import DEFAULT_REQUEST_TIMEOUT
from ..exceptions import ClaimError, LedgerError
from ..ledger.client import LedgerClient
from .messages import Malformed, decode_json_body, require_str

logger = logging.getLogger("epoch_distributor.protocol.fee_claim")


CLAIM_ACTION = "collectCreatorFee"
CLAIM_MAX_RETRIES = 3


@dataclass(frozen=True)
class ClaimResult:
    """Outcome of one creator fee claim."""
    signature: str
    claimed_amount: int
    before_amount: int
    after_amount: int

    def to_dict(self) -> dict:
        return {
            "signature": self.signature,
            "claimed_amount": str(self.claimed_amount),
            "before_amount": str(self.before_amount),
            "after_amount": str(self.after_amount),
        }


def deserialize_transaction(raw: bytes) -> Union[VersionedTransaction, Transaction]:
    """Decode wire bytes as a versioned transaction, falling back to legacy."""
    try:
        return VersionedTransaction.from_bytes(raw)
    except Exception:
        return Transaction.from_bytes(raw)


def sign_claim_transaction(
    transaction: Union[VersionedTransaction, Transaction],
    creator: Keypair,
) -> Union[VersionedTransaction, Transaction]:
    """
    Add the creator's signature, keeping any signatures already present.

    Raises:
        ClaimError: If the creator is not a required signer
    """
    if isinstance(transaction, Transaction):
        transaction.partial_sign([creator], transaction.message.recent_blockhash)
        return transaction

    message = transaction.message
    required = message.header.num_required_signatures
    signers = list(message.account_keys[:required])
    if creator.pubkey() not in signers:
        raise ClaimError(
            "Claim transaction does not require the creator's signature",
            context={"creator": str(creator.pubkey())},
        )

    signatures = list(transaction.signatures)
    signatures[signers.index(creator.pubkey())] = creator.sign_message(
        to_bytes_versioned(message)
    )
    return VersionedTransaction.populate(message, signatures)


class FeeClaimAdapter:
    """
    Claims accrued creator fees for a token.

    Example:
        adapter = FeeClaimAdapter(ledger_client, "https://pumpportal.fun/api/trade-local")
        result = adapter.claim(mint, creator_keypair)
        print(result.claimed_amount)
    """

    def __init__(
        self,
        client: LedgerClient,
        fee_claim_url: str,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.client = client
        self.fee_claim_url = fee_claim_url
        self._timeout = timeout
        self._session = session or requests.Session()

    def claim(self, mint: Pubkey, creator: Keypair) -> ClaimResult:
        """
        Claim creator fees and report the creator's net balance change.

        Args:
            mint: Token whose creator fees are claimed
            creator: Creator identity (signs and pays the claim fee)

        Returns:
            ClaimResult

        Raises:
            ClaimError: On API failure, a missing or undecodable transaction,
                or a broadcast/confirmation failure
        """
        creator_pubkey = creator.pubkey()
        before = self.client.get_balance(creator_pubkey)

        raw = self._request_transaction(mint, creator_pubkey)

        try:
            transaction = sign_claim_transaction(deserialize_transaction(raw), creator)
        except ClaimError:
            raise
        except Exception as e:
            raise ClaimError(
                "Claim transaction could not be decoded or signed",
                context={"mint": str(mint)},
                original_error=e,
            )

        try:
            signature = self.client.send_transaction(
                bytes(transaction),
                skip_preflight=False,
                max_retries=CLAIM_MAX_RETRIES,
            )
            logger.info(f"Submitted creator fee claim: signature={signature}")
            self.client.confirm_transaction(signature)
            after = self.client.get_balance(creator_pubkey)
        except LedgerError as e:
            raise ClaimError(
                "Creator fee claim failed on the ledger",
                context={"mint": str(mint), **e.context},
                original_error=e,
            )

        claimed = max(after - before, 0)
        logger.info(
            f"Creator fee claim confirmed: signature={signature} claimed={claimed} "
            f"before={before} after={after}"
        )
        return ClaimResult(
            signature=signature,
            claimed_amount=claimed,
            before_amount=before,
            after_amount=after,
        )

    def _request_transaction(self, mint: Pubkey, creator: Pubkey) -> bytes:
        payload = {
            "action": CLAIM_ACTION,
            "mint": str(mint),
            "creator": str(creator),
        }
        try:
            response = self._session.post(
                self.fee_claim_url,
                json=payload,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise ClaimError(
                "Fee claim request failed",
                context={"url": self.fee_claim_url},
                original_error=e,
            )

        if not response.ok:
            raise ClaimError(
                f"Fee claim request failed: {response.status_code}",
                context={"url": self.fee_claim_url, "status": response.status_code,
                         "body": response.text[:500]},
            )

        decoded = decode_json_body(response)
        if isinstance(decoded, Malformed):
            raise ClaimError(f"Fee claim response {decoded.reason}",
                             context={"body": decoded.preview()})

        field = require_str(decoded["body"], "transaction")
        if isinstance(field, Malformed):
            raise ClaimError("Fee claim response missing `transaction` field",
                             context={"body": field.preview()})

        try:
            return base64.b64decode(field["transaction"], validate=True)
        except (binascii.Error, ValueError) as e:
            raise ClaimError("Fee claim transaction is not valid base64", original_error=e)

    def close(self) -> None:
        self._session.close()
