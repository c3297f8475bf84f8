"""Pytest configuration and shared fixtures."""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from solana_payments.errors import GatewayUnavailable
from solana_payments.ledger import PaymentLedger
from solana_payments.matching import AmountMatchEngine
from solana_payments.models import SignatureInfo, TransactionDetail
from solana_payments.reconciler import Reconciler
from solana_payments.service import PaymentService

# Wrapped SOL mint: a valid base58 public key
TREASURY = "So11111111111111111111111111111111111111112"
PAYER_WALLET = "11111111111111111111111111111111"
START = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)
TIMEOUT = timedelta(minutes=30)
ONE_SOL = 1_000_000_000


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def timestamp(self, offset_seconds: int = 0) -> int:
        return int(self.now.timestamp()) + offset_seconds


class FakeLedgerGateway:
    """In-memory LedgerGateway; transfers are listed most-recent-first."""

    def __init__(self) -> None:
        self.signatures: list[SignatureInfo] = []
        self.transactions: dict[str, TransactionDetail] = {}
        self.fail_with: Exception | None = None
        self.signature_calls: list[tuple[str, int]] = []
        self.transaction_calls: list[str] = []
        self.closed = False

    def add_transfer(
        self,
        signature: str,
        block_time: int | None,
        delta: int,
        address: str = TREASURY,
        succeeded: bool = True,
    ) -> None:
        pre = 5 * ONE_SOL
        self.signatures.insert(
            0, SignatureInfo(signature=signature, block_time=block_time)
        )
        self.transactions[signature] = TransactionDetail(
            signature=signature,
            succeeded=succeeded,
            balances={
                PAYER_WALLET: (pre, pre - delta - 5000),
                address: (pre, pre + delta),
            },
            block_time=block_time,
        )

    async def list_recent_signatures(
        self, address: str, limit: int
    ) -> list[SignatureInfo]:
        self.signature_calls.append((address, limit))
        if self.fail_with is not None:
            raise self.fail_with
        return self.signatures[:limit]

    async def get_transaction(self, signature: str) -> TransactionDetail | None:
        self.transaction_calls.append(signature)
        return self.transactions.get(signature)

    async def close(self) -> None:
        self.closed = True


class FakeSleep:
    """Async sleep that returns immediately and runs one queued hook per call."""

    def __init__(self) -> None:
        self.calls: list[float] = []
        self.hooks: list[Callable[[], None]] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.hooks:
            self.hooks.pop(0)()
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway():
    return FakeLedgerGateway()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def ledger(clock):
    return PaymentLedger(TIMEOUT, clock=clock)


@pytest.fixture
def gateway_errors():
    return []


@pytest.fixture
def reconciler(ledger, gateway, gateway_errors):
    return Reconciler(
        ledger,
        gateway,
        AmountMatchEngine(TREASURY),
        TREASURY,
        on_gateway_error=lambda payment_id, error: gateway_errors.append(
            (payment_id, error)
        ),
    )


@pytest.fixture
def service(gateway, clock, fake_sleep):
    return PaymentService(
        TREASURY,
        gateway,
        payment_timeout=TIMEOUT,
        clock=clock,
        sleep=fake_sleep,
    )


@pytest.fixture
def unavailable():
    return GatewayUnavailable("getSignaturesForAddress request failed: timeout")
