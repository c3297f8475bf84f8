"""
Amount-based matching of ledger transactions against payment requests.
"""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

import structlog

from .models import LedgerTransaction, MatchProof, PaymentRequest

logger = structlog.get_logger(__name__)

# Absorbs small fee/rounding variance between sent and received amounts
DEFAULT_TOLERANCE_UNITS = 1000


@runtime_checkable
class MatchStrategy(Protocol):
    """Decides whether any candidate transaction satisfies a payment request."""

    def match(
        self, record: PaymentRequest, transactions: Sequence[LedgerTransaction]
    ) -> MatchProof | None: ...


class AmountMatchEngine:
    """
    Matches on the treasury's net balance change.

    Rules, applied per transaction in the order given (most-recent-first):
    1. Skip transactions without a block time or executed before the request
       was created.
    2. Skip failed transactions.
    3. Skip transactions that do not touch the treasury address.
    4. Match when ``abs(delta - expected) < tolerance``; the first match wins.

    No memo or reference field is inspected, so two pending requests with the
    same amount cannot be told apart.
    """

    def __init__(
        self, treasury_address: str, tolerance_units: int = DEFAULT_TOLERANCE_UNITS
    ):
        self.treasury_address = treasury_address
        self.tolerance_units = tolerance_units

    def match(
        self, record: PaymentRequest, transactions: Sequence[LedgerTransaction]
    ) -> MatchProof | None:
        for tx in transactions:
            delta = self._treasury_delta(record, tx)
            if delta is None:
                continue
            if abs(delta - record.expected_amount) < self.tolerance_units:
                logger.debug(
                    "transaction_matched",
                    payment_id=record.id,
                    signature=tx.signature,
                    delta=delta,
                )
                return MatchProof(
                    tx_ref=tx.signature, amount_received=delta, block_time=tx.block_time
                )
        return None

    def _treasury_delta(
        self, record: PaymentRequest, tx: LedgerTransaction
    ) -> int | None:
        try:
            executed_at = tx.executed_at
            if executed_at is None or executed_at < record.created_at:
                return None
            if not tx.succeeded:
                return None

            balance = tx.balances.get(self.treasury_address)
            if balance is None:
                return None
            pre, post = balance
            return int(post) - int(pre)
        except (TypeError, ValueError, OverflowError, OSError) as e:
            logger.warning(
                "transaction_malformed", signature=tx.signature, error=str(e)
            )
            return None
