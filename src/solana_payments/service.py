"""
Payment service: the caller-facing operations over the ledger, reconciler and
confirmation watchers.
"""

from collections.abc import Mapping
from datetime import timedelta
from decimal import Decimal
from typing import Any

import structlog

from .config import Settings
from .gateway.interfaces import LedgerGateway
from .gateway.solana_rpc import SolanaRpcGateway
from .health import GatewayHealth, GatewayHealthSnapshot
from .ledger import Clock, PaymentLedger, utc_now
from .matching import AmountMatchEngine, MatchStrategy
from .models import PaymentInstructions, PendingPaymentSummary
from .reconciler import DEFAULT_SIGNATURE_WINDOW, GatewayErrorHook, Reconciler
from .store import PaymentStore
from .units import sol_to_lamports
from .watcher import ConfirmationWatcher, Sleep, WatchHandler

logger = structlog.get_logger(__name__)

DEFAULT_PAYMENT_TIMEOUT = timedelta(minutes=30)
DEFAULT_POLL_INTERVAL_SECONDS = 15.0
DEFAULT_RETENTION = timedelta(days=1)


class PaymentService:
    """
    Accepts payments into one treasury address and reconciles them against
    issued payment requests.

    Responsibilities:
    - Creating payment requests with an expiry
    - Checking a request against recent treasury transactions
    - Watching a request in the background until it settles
    - Listing a payer's open requests
    - Reclaiming old settled requests when the caller asks for it
    """

    def __init__(
        self,
        treasury_address: str,
        gateway: LedgerGateway,
        *,
        network: str = "devnet",
        payment_timeout: timedelta = DEFAULT_PAYMENT_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        signature_window: int = DEFAULT_SIGNATURE_WINDOW,
        strategy: MatchStrategy | None = None,
        match_tolerance_units: int = 1000,
        retention: timedelta = DEFAULT_RETENTION,
        store: PaymentStore | None = None,
        clock: Clock = utc_now,
        sleep: Sleep | None = None,
        on_gateway_error: GatewayErrorHook | None = None,
    ):
        """
        Initialize payment service.

        Args:
            treasury_address: Shared receiving address for every payment
            gateway: Ledger access (e.g., SolanaRpcGateway)
            network: Network name reported in payment instructions
            payment_timeout: How long a request stays payable
            poll_interval: Seconds between watcher checks
            signature_window: How many recent treasury signatures each check reads
            strategy: Match strategy; defaults to AmountMatchEngine
            match_tolerance_units: Lamport tolerance for the default strategy
            retention: Default age after which settled requests are swept
            store: Record storage; defaults to an in-memory store
            clock: Source of the current UTC time
            sleep: Async sleep used between watcher checks
            on_gateway_error: Called with (payment_id, error) on every gateway failure
        """
        if not treasury_address:
            raise ValueError("Treasury wallet public key is required")

        self.treasury_address = treasury_address
        self.gateway = gateway
        self.network = network
        self.poll_interval = poll_interval
        self.retention = retention
        self._sleep = sleep
        self.health = GatewayHealth()
        self.ledger = PaymentLedger(payment_timeout, store=store, clock=clock)
        self.reconciler = Reconciler(
            self.ledger,
            gateway,
            strategy or AmountMatchEngine(treasury_address, match_tolerance_units),
            treasury_address,
            signature_window=signature_window,
            health=self.health,
            on_gateway_error=on_gateway_error,
        )
        self._watchers: dict[str, ConfirmationWatcher] = {}

    @classmethod
    def from_settings(
        cls, settings: Settings, gateway: LedgerGateway | None = None, **kwargs: Any
    ) -> "PaymentService":
        """Builds a service (and, unless given, a SolanaRpcGateway) from Settings."""
        payments = settings.payments
        if gateway is None:
            gateway = SolanaRpcGateway(
                settings.ledger.resolved_rpc_url,
                commitment=settings.ledger.commitment,
                timeout=settings.ledger.request_timeout_seconds,
            )
        return cls(
            payments.treasury_address,
            gateway,
            network=settings.ledger.network,
            payment_timeout=timedelta(seconds=payments.payment_timeout_seconds),
            poll_interval=payments.poll_interval_seconds,
            signature_window=payments.signature_window,
            match_tolerance_units=payments.match_tolerance_units,
            retention=timedelta(seconds=payments.retention_seconds),
            **kwargs,
        )

    def create_payment_request(
        self,
        payer_ref: str,
        amount: int,
        metadata: Mapping[str, Any] | None = None,
    ) -> PaymentInstructions:
        """
        Creates a pending payment request and returns payment instructions.

        Args:
            payer_ref: Identifier of the party expected to pay
            amount: Expected amount in lamports
            metadata: Opaque payload stored with the request

        Raises:
            InvalidArgument: If payer_ref is empty or amount is not positive
        """
        record = self.ledger.create(payer_ref, amount, metadata)
        return PaymentInstructions(
            id=record.id,
            payer_ref=record.payer_ref,
            address=self.treasury_address,
            amount=record.expected_amount,
            network=self.network,
            expires_at=record.expires_at,
        )

    def create_payment_request_sol(
        self,
        payer_ref: str,
        amount_sol: Decimal | str | int | float,
        metadata: Mapping[str, Any] | None = None,
    ) -> PaymentInstructions:
        """Same as create_payment_request, with the amount given in SOL."""
        return self.create_payment_request(
            payer_ref, sol_to_lamports(amount_sol), metadata
        )

    async def check_payment_status(self, payment_id: str) -> bool:
        """
        Checks if a payment has been received.

        Raises:
            NotFound: If the payment id is unknown
        """
        return await self.reconciler.verify(payment_id)

    def watch_payment_confirmation(
        self, payment_id: str, handler: WatchHandler
    ) -> ConfirmationWatcher:
        """
        Starts (or joins) a background watch for one payment request.

        Must be called from a running event loop. The handler receives a
        WatchOutcome once the request is confirmed, expires, or the watch fails.

        Raises:
            NotFound: If the payment id is unknown
        """
        self.ledger.get(payment_id)

        existing = self._watchers.get(payment_id)
        if existing is not None and existing.active:
            existing.add_handler(handler)
            return existing

        kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        watcher = ConfirmationWatcher(
            payment_id,
            self.reconciler,
            self.ledger,
            self.poll_interval,
            **kwargs,
        )
        watcher.add_handler(handler)
        self._watchers[payment_id] = watcher
        return watcher.start()

    def list_pending_payments(self, payer_ref: str) -> list[PendingPaymentSummary]:
        return [
            PendingPaymentSummary.from_request(record)
            for record in self.ledger.list_pending(payer_ref)
        ]

    def sweep_expired_payments(self, retention: timedelta | None = None) -> int:
        """
        Deletes confirmed and expired requests older than ``retention``
        (default: the configured retention). Also forgets finished watchers.

        Returns:
            Number of payment requests deleted
        """
        removed = self.ledger.sweep(
            self.retention if retention is None else retention
        )
        for payment_id, watcher in list(self._watchers.items()):
            if not watcher.active:
                del self._watchers[payment_id]
        return removed

    @property
    def gateway_health(self) -> GatewayHealthSnapshot:
        return self.health.snapshot()

    async def close(self) -> None:
        """Cancels live watchers and closes the gateway if it can be closed."""
        watchers = list(self._watchers.values())
        for watcher in watchers:
            watcher.cancel()
        for watcher in watchers:
            if not watcher.done:
                await watcher.wait()
        self._watchers.clear()

        close = getattr(self.gateway, "close", None)
        if close is not None:
            await close()
        logger.info("payment_service_closed", watchers=len(watchers))
