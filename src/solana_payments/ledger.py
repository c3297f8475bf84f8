"""
Payment ledger: owns payment request records and every status transition.
"""

import secrets
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from .errors import ConflictingState, InvalidArgument, NotFound
from .janitor import JanitorSweep
from .models import PaymentRequest, PaymentStatus
from .store import InMemoryPaymentStore, PaymentStore

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]

# Attempts at drawing a fresh id before giving up on a colliding store
MAX_ID_ATTEMPTS = 5


def utc_now() -> datetime:
    return datetime.now(UTC)


class PaymentLedger:
    """
    Registry of payment requests.

    Status moves only from PENDING to CONFIRMED or EXPIRED, and every
    transition goes through a compare-and-set on the stored status, so at
    most one writer wins per record.
    """

    def __init__(
        self,
        payment_timeout: timedelta,
        store: PaymentStore | None = None,
        clock: Clock = utc_now,
    ):
        self.payment_timeout = payment_timeout
        self.store = store if store is not None else InMemoryPaymentStore()
        self.clock = clock
        self.janitor = JanitorSweep(self.store)

    def create(
        self,
        payer_ref: str,
        expected_amount: int,
        metadata: Mapping[str, Any] | None = None,
    ) -> PaymentRequest:
        """
        Registers a new pending payment request.

        Args:
            payer_ref: Caller-supplied identifier of the expected payer
            expected_amount: Amount in lamports
            metadata: Opaque payload stored with the request

        Raises:
            InvalidArgument: If payer_ref is empty or the amount is not a
                positive integer
        """
        if not payer_ref:
            raise InvalidArgument("payer_ref is required")
        if (
            not isinstance(expected_amount, int)
            or isinstance(expected_amount, bool)
            or expected_amount <= 0
        ):
            raise InvalidArgument("Amount must be a positive number of lamports")

        for _ in range(MAX_ID_ATTEMPTS):
            now = self.clock()
            record = PaymentRequest(
                id=self._generate_id(payer_ref, now),
                payer_ref=payer_ref,
                expected_amount=expected_amount,
                created_at=now,
                expires_at=now + self.payment_timeout,
                metadata=dict(metadata or {}),
            )
            if self.store.add(record):
                break
            logger.warning("payment_id_collision", payment_id=record.id)
        else:
            raise RuntimeError("Could not allocate a unique payment id")

        logger.info(
            "payment_created",
            payment_id=record.id,
            payer_ref=payer_ref,
            amount=expected_amount,
            expires_at=record.expires_at.isoformat(),
        )
        return record

    def get(self, payment_id: str) -> PaymentRequest:
        record = self.store.get(payment_id)
        if record is None:
            raise NotFound(payment_id)
        return record

    def transition(
        self,
        payment_id: str,
        status: PaymentStatus,
        tx_ref: str | None = None,
    ) -> PaymentRequest:
        """
        Moves a pending record to a terminal status.

        Re-applying the status a record already holds is a no-op that returns
        the stored record unchanged, including its original ``matched_tx_ref``.

        Raises:
            NotFound: If the record does not exist
            ConflictingState: If the record is already in the other terminal status
            InvalidArgument: If the target is PENDING, or CONFIRMED without tx_ref
        """
        if status is PaymentStatus.PENDING:
            raise InvalidArgument("Cannot transition a payment back to pending")
        if status is PaymentStatus.CONFIRMED and not tx_ref:
            raise InvalidArgument("Confirming a payment requires a transaction ref")

        while True:
            current = self.get(payment_id)
            if current.status is status:
                return current
            if current.status.is_terminal:
                logger.warning(
                    "payment_transition_rejected",
                    payment_id=payment_id,
                    current=current.status.value,
                    requested=status.value,
                )
                raise ConflictingState(
                    payment_id, current.status.value, status.value
                )

            if status is PaymentStatus.CONFIRMED:
                updated = replace(
                    current,
                    status=status,
                    confirmed_at=self.clock(),
                    matched_tx_ref=tx_ref,
                )
            else:
                updated = replace(current, status=status)

            if self.store.compare_and_set(payment_id, PaymentStatus.PENDING, updated):
                logger.info(
                    f"payment_{status.value}",
                    payment_id=payment_id,
                    payer_ref=current.payer_ref,
                    tx_ref=tx_ref,
                )
                return updated
            # Lost the race; re-read and decide again

    def list_pending(self, payer_ref: str) -> list[PaymentRequest]:
        """Returns the payer's unexpired pending requests, oldest first."""
        now = self.clock()
        pending = [
            record
            for record in self.store.snapshot()
            if record.payer_ref == payer_ref
            and record.status is PaymentStatus.PENDING
            and now < record.expires_at
        ]
        return sorted(pending, key=lambda record: record.created_at)

    def sweep(self, retention: timedelta) -> int:
        """Deletes terminal records older than ``retention``. Returns the count."""
        return self.janitor.run(retention, self.clock())

    @staticmethod
    def _generate_id(payer_ref: str, now: datetime) -> str:
        millis = int(now.timestamp() * 1000)
        return f"payment_{payer_ref}_{millis}_{secrets.token_hex(4)}"
