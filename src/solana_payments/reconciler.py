"""
One verification pass for a payment request: pull recent treasury history from
the ledger gateway, run the match strategy, record the outcome.
"""

import asyncio
from collections.abc import Callable

import structlog
from opentelemetry import trace

from .errors import ConflictingState, GatewayUnavailable
from .gateway.interfaces import LedgerGateway
from .health import GatewayHealth
from .ledger import PaymentLedger
from .logging_config import bind_payment_id, clear_payment_context
from .matching import MatchStrategy
from .models import LedgerTransaction, PaymentRequest, PaymentStatus

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_SIGNATURE_WINDOW = 10

GatewayErrorHook = Callable[[str, GatewayUnavailable], None]


class Reconciler:
    """
    Drives PaymentLedger transitions from ledger evidence.

    Gateway failures never escape ``verify``: they are logged, recorded on the
    current span and in GatewayHealth, passed to ``on_gateway_error``, and the
    pass answers "not yet confirmed".
    """

    def __init__(
        self,
        ledger: PaymentLedger,
        gateway: LedgerGateway,
        strategy: MatchStrategy,
        treasury_address: str,
        signature_window: int = DEFAULT_SIGNATURE_WINDOW,
        health: GatewayHealth | None = None,
        on_gateway_error: GatewayErrorHook | None = None,
    ):
        self.ledger = ledger
        self.gateway = gateway
        self.strategy = strategy
        self.treasury_address = treasury_address
        self.signature_window = signature_window
        self.health = health if health is not None else GatewayHealth()
        self.on_gateway_error = on_gateway_error

    async def verify(self, payment_id: str) -> bool:
        """
        Checks whether a payment request has been satisfied.

        Returns:
            True if the request is confirmed, False if it is still pending or
            has expired

        Raises:
            NotFound: If the request does not exist
        """
        with tracer.start_as_current_span("payment_verify") as span:
            span.set_attribute("payment.id", payment_id)
            bind_payment_id(payment_id)
            try:
                confirmed = await self._verify(payment_id, span)
                span.set_attribute("payment.confirmed", confirmed)
                return confirmed
            finally:
                clear_payment_context()

    async def _verify(self, payment_id: str, span: trace.Span) -> bool:
        record = self.ledger.get(payment_id)

        if record.status is PaymentStatus.CONFIRMED:
            return True
        if record.status is PaymentStatus.EXPIRED:
            return False

        now = self.ledger.clock()
        if record.is_expired_at(now):
            return self._settle(payment_id, PaymentStatus.EXPIRED)

        try:
            transactions = await self._fetch_candidates(record)
        except GatewayUnavailable as e:
            self._report_gateway_error(payment_id, e, span)
            return False
        self.health.record_success(self.ledger.clock())

        proof = self.strategy.match(record, transactions)
        if proof is None:
            logger.info(
                "payment_not_yet_received",
                amount=record.expected_amount,
                candidates=len(transactions),
            )
            return False

        span.set_attribute("payment.tx_ref", proof.tx_ref)
        return self._settle(payment_id, PaymentStatus.CONFIRMED, proof.tx_ref)

    async def _fetch_candidates(
        self, record: PaymentRequest
    ) -> list[LedgerTransaction]:
        """
        Fetches detail for the recent signatures that could still match.

        Signatures without a block time, marked failed, or older than the
        request are dropped before any detail is fetched. Gateway order is
        preserved.
        """
        signatures = await self.gateway.list_recent_signatures(
            self.treasury_address, self.signature_window
        )
        created_ts = record.created_at.timestamp()
        relevant = [
            info
            for info in signatures
            if isinstance(info.block_time, int | float)
            and info.block_time >= created_ts
            and not info.failed
        ]
        if not relevant:
            return []

        details = await asyncio.gather(
            *(self.gateway.get_transaction(info.signature) for info in relevant),
            return_exceptions=True,
        )

        transactions = []
        for info, detail in zip(relevant, details):
            if isinstance(detail, BaseException):
                raise detail
            if detail is None:
                logger.debug("transaction_not_found", signature=info.signature)
                continue
            transactions.append(LedgerTransaction.from_ledger(info, detail))
        return transactions

    def _settle(
        self, payment_id: str, status: PaymentStatus, tx_ref: str | None = None
    ) -> bool:
        try:
            record = self.ledger.transition(payment_id, status, tx_ref=tx_ref)
        except ConflictingState:
            # A concurrent pass already reached the other terminal status
            record = self.ledger.get(payment_id)
        return record.status is PaymentStatus.CONFIRMED

    def _report_gateway_error(
        self, payment_id: str, error: GatewayUnavailable, span: trace.Span
    ) -> None:
        self.health.record_failure(error, self.ledger.clock())
        span.record_exception(error)
        logger.error(
            "gateway_unavailable",
            error=str(error),
            consecutive_failures=self.health.snapshot().consecutive_failures,
        )
        if self.on_gateway_error is not None:
            self.on_gateway_error(payment_id, error)
