"""
Confirmation watcher: polls the Reconciler for one payment request until it
is confirmed, expires, fails, or the watch is cancelled.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable

import structlog

from .ledger import PaymentLedger
from .models import PaymentRequest, PaymentStatus, WatchOutcome, WatchState
from .reconciler import Reconciler

logger = structlog.get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]
WatchHandler = Callable[[WatchOutcome], Awaitable[None] | None]


class ConfirmationWatcher:
    """
    State machine: WATCHING -> CONFIRMED | EXPIRED | FAILED, or CANCELLED on
    request.

    The first check runs as soon as the watcher starts. Each registered handler
    receives the terminal outcome exactly once; cancellation delivers nothing,
    and a check already in flight when ``cancel`` is called has its result
    discarded.
    """

    def __init__(
        self,
        payment_id: str,
        reconciler: Reconciler,
        ledger: PaymentLedger,
        poll_interval: float,
        sleep: Sleep = asyncio.sleep,
    ):
        self.payment_id = payment_id
        self.reconciler = reconciler
        self.ledger = ledger
        self.poll_interval = poll_interval
        self.state = WatchState.WATCHING
        self.checks = 0
        self._sleep = sleep
        self._handlers: list[WatchHandler] = []
        self._cancel_requested = asyncio.Event()
        self._task: asyncio.Task[WatchOutcome | None] | None = None

    def add_handler(self, handler: WatchHandler) -> None:
        if self.state is not WatchState.WATCHING:
            raise RuntimeError(f"Watcher for {self.payment_id} already finished")
        self._handlers.append(handler)

    def start(self) -> "ConfirmationWatcher":
        """Schedules the watch loop on the running event loop."""
        if self._task is not None:
            raise RuntimeError(f"Watcher for {self.payment_id} already started")
        self._task = asyncio.create_task(
            self._run(), name=f"watch-payment-{self.payment_id}"
        )
        return self

    def cancel(self) -> None:
        """Stops future checks. Handlers are not invoked."""
        if self.state is WatchState.WATCHING:
            self._cancel_requested.set()

    @property
    def active(self) -> bool:
        """True while checks are still being scheduled."""
        return (
            self.state is WatchState.WATCHING
            and not self._cancel_requested.is_set()
        )

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def wait(self) -> WatchOutcome | None:
        """Waits for the watch to end. Returns None if it was cancelled."""
        if self._task is None:
            raise RuntimeError(f"Watcher for {self.payment_id} was never started")
        return await self._task

    async def _run(self) -> WatchOutcome | None:
        logger.info(
            "watch_started",
            payment_id=self.payment_id,
            poll_interval=self.poll_interval,
        )
        while not self._cancel_requested.is_set():
            outcome = await self._check()
            if self._cancel_requested.is_set():
                logger.info("watch_result_discarded", payment_id=self.payment_id)
                break
            if outcome is not None:
                await self._finish(outcome)
                return outcome
            if not await self._idle():
                break

        self.state = WatchState.CANCELLED
        logger.info("watch_cancelled", payment_id=self.payment_id, checks=self.checks)
        return None

    async def _check(self) -> WatchOutcome | None:
        self.checks += 1
        try:
            confirmed = await self.reconciler.verify(self.payment_id)
            record = self.ledger.get(self.payment_id)
        except Exception as e:
            logger.error(
                "watch_check_failed",
                payment_id=self.payment_id,
                error=str(e),
                exc_info=True,
            )
            return WatchOutcome(
                payment_id=self.payment_id, state=WatchState.FAILED, error=e
            )

        if confirmed:
            return self._outcome(record, WatchState.CONFIRMED)
        if record.status is PaymentStatus.EXPIRED:
            return self._outcome(record, WatchState.EXPIRED)
        return None

    async def _idle(self) -> bool:
        """Sleeps one poll interval. Returns False if cancelled meanwhile."""
        sleeper = asyncio.ensure_future(self._sleep(self.poll_interval))
        canceller = asyncio.ensure_future(self._cancel_requested.wait())
        _, pending = await asyncio.wait(
            {sleeper, canceller}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        return not self._cancel_requested.is_set()

    async def _finish(self, outcome: WatchOutcome) -> None:
        self.state = outcome.state
        logger.info(
            "watch_finished",
            payment_id=self.payment_id,
            state=outcome.state.value,
            checks=self.checks,
        )
        for handler in self._handlers:
            try:
                result = handler(outcome)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("watch_handler_failed", payment_id=self.payment_id)

    def _outcome(self, record: PaymentRequest, state: WatchState) -> WatchOutcome:
        if state is WatchState.CONFIRMED:
            return WatchOutcome(
                payment_id=record.id,
                state=state,
                payer_ref=record.payer_ref,
                status=record.status,
                confirmed_at=record.confirmed_at,
                tx_ref=record.matched_tx_ref,
            )
        return WatchOutcome(
            payment_id=record.id,
            state=state,
            payer_ref=record.payer_ref,
            status=record.status,
            expires_at=record.expires_at,
        )
