"""
Domain records for payment requests and the ledger data they are matched against.
"""

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from .units import lamports_to_sol


class PaymentStatus(enum.Enum):
    """Status of a payment request awaiting an on-chain transfer."""

    PENDING = "pending"  # Payment not yet received
    CONFIRMED = "confirmed"  # Matching transfer found on-chain
    EXPIRED = "expired"  # Timed out before a transfer was matched

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


@dataclass(frozen=True)
class PaymentRequest:
    """
    Snapshot of one payment request.

    Records are immutable; the ledger replaces the stored snapshot on every
    transition so readers never observe a half-applied update.
    """

    id: str
    payer_ref: str
    expected_amount: int  # lamports
    created_at: datetime
    expires_at: datetime
    status: PaymentStatus = PaymentStatus.PENDING
    confirmed_at: datetime | None = None
    matched_tx_ref: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def is_expired_at(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class SignatureInfo:
    """One entry of a ``getSignaturesForAddress`` listing."""

    signature: str
    block_time: int | None  # unix seconds, None while unconfirmed
    failed: bool = False


@dataclass(frozen=True)
class TransactionDetail:
    """
    The parts of a fetched transaction that payment matching needs.

    ``balances`` maps each account address to its (pre, post) lamport balance.
    """

    signature: str
    succeeded: bool
    balances: Mapping[str, tuple[int, int]] = field(default_factory=dict)
    block_time: int | None = None


@dataclass(frozen=True)
class LedgerTransaction:
    """A candidate transaction handed to a match strategy."""

    signature: str
    block_time: int | None
    succeeded: bool
    balances: Mapping[str, tuple[int, int]] = field(default_factory=dict)

    @property
    def executed_at(self) -> datetime | None:
        if self.block_time is None:
            return None
        return datetime.fromtimestamp(self.block_time, UTC)

    @classmethod
    def from_ledger(
        cls, info: SignatureInfo, detail: TransactionDetail
    ) -> "LedgerTransaction":
        block_time = (
            detail.block_time if detail.block_time is not None else info.block_time
        )
        return cls(
            signature=info.signature,
            block_time=block_time,
            succeeded=detail.succeeded and not info.failed,
            balances=detail.balances,
        )


@dataclass(frozen=True)
class MatchProof:
    """Evidence that a ledger transaction satisfies a payment request."""

    tx_ref: str  # Transaction signature
    amount_received: int  # Net lamport delta at the treasury
    block_time: int | None


@dataclass(frozen=True)
class PaymentInstructions:
    """What the payer needs in order to send the transfer."""

    id: str
    payer_ref: str
    address: str
    amount: int
    network: str
    expires_at: datetime

    @property
    def amount_sol(self) -> Decimal:
        return lamports_to_sol(self.amount)


@dataclass(frozen=True)
class PendingPaymentSummary:
    id: str
    payer_ref: str
    amount: int
    created_at: datetime
    expires_at: datetime

    @property
    def amount_sol(self) -> Decimal:
        return lamports_to_sol(self.amount)

    @classmethod
    def from_request(cls, record: PaymentRequest) -> "PendingPaymentSummary":
        return cls(
            id=record.id,
            payer_ref=record.payer_ref,
            amount=record.expected_amount,
            created_at=record.created_at,
            expires_at=record.expires_at,
        )


class WatchState(enum.Enum):
    """States of a confirmation watcher."""

    WATCHING = "watching"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class WatchOutcome:
    """Terminal result delivered to a watch handler."""

    payment_id: str
    state: WatchState
    payer_ref: str | None = None
    status: PaymentStatus | None = None
    confirmed_at: datetime | None = None
    tx_ref: str | None = None
    expires_at: datetime | None = None
    error: BaseException | None = None
