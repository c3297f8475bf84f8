from unittest.mock import AsyncMock

import httpx
import pytest
from conftest import ONE_SOL, TREASURY

from solana_payments.errors import GatewayUnavailable, NotFound
from solana_payments.gateway import SolanaRpcGateway
from solana_payments.health import GatewayStatus
from solana_payments.matching import AmountMatchEngine
from solana_payments.models import MatchProof, PaymentStatus, WatchState
from solana_payments.reconciler import Reconciler
from solana_payments.watcher import ConfirmationWatcher

RPC_URL = "https://api.devnet.solana.com"


@pytest.mark.asyncio
async def test_matching_transfer_confirms_request(ledger, reconciler, gateway, clock):
    record = ledger.create("u1", ONE_SOL)
    gateway.add_transfer("sig-1", clock.timestamp(5), ONE_SOL)

    assert await reconciler.verify(record.id) is True

    stored = ledger.get(record.id)
    assert stored.status is PaymentStatus.CONFIRMED
    assert stored.matched_tx_ref == "sig-1"
    assert gateway.signature_calls == [(TREASURY, 10)]


@pytest.mark.asyncio
async def test_amount_outside_tolerance_stays_pending(ledger, reconciler, gateway, clock):
    record = ledger.create("u1", ONE_SOL)
    gateway.add_transfer("sig-1", clock.timestamp(5), ONE_SOL - 999_000_001)

    assert await reconciler.verify(record.id) is False
    assert ledger.get(record.id).status is PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_confirmed_request_is_idempotent(ledger, reconciler, gateway, clock):
    record = ledger.create("u1", ONE_SOL)
    gateway.add_transfer("sig-1", clock.timestamp(5), ONE_SOL)
    assert await reconciler.verify(record.id) is True

    gateway.add_transfer("sig-2", clock.timestamp(6), ONE_SOL)
    calls = len(gateway.signature_calls)

    assert await reconciler.verify(record.id) is True
    assert ledger.get(record.id).matched_tx_ref == "sig-1"
    assert len(gateway.signature_calls) == calls


@pytest.mark.asyncio
async def test_request_expires_without_transfers(ledger, reconciler, gateway, clock):
    record = ledger.create("u1", ONE_SOL)
    assert await reconciler.verify(record.id) is False

    clock.advance(minutes=30, seconds=1)

    assert await reconciler.verify(record.id) is False
    assert ledger.get(record.id).status is PaymentStatus.EXPIRED
    assert len(gateway.signature_calls) == 1


@pytest.mark.asyncio
async def test_expired_request_never_confirms_later(ledger, reconciler, gateway, clock):
    record = ledger.create("u1", ONE_SOL)
    clock.advance(minutes=31)
    assert await reconciler.verify(record.id) is False

    gateway.add_transfer("late", clock.timestamp(), ONE_SOL)
    clock.advance(seconds=1)

    assert await reconciler.verify(record.id) is False
    assert await reconciler.verify(record.id) is False
    assert ledger.get(record.id).matched_tx_ref is None


@pytest.mark.asyncio
async def test_older_signatures_are_not_fetched(ledger, reconciler, gateway, clock):
    gateway.add_transfer("before", clock.timestamp(-60), ONE_SOL)
    gateway.add_transfer("unconfirmed", None, ONE_SOL)
    record = ledger.create("u1", ONE_SOL)

    assert await reconciler.verify(record.id) is False
    assert gateway.transaction_calls == []


@pytest.mark.asyncio
async def test_unknown_signature_detail_is_skipped(ledger, reconciler, gateway, clock):
    record = ledger.create("u1", ONE_SOL)
    gateway.add_transfer("good", clock.timestamp(5), ONE_SOL)
    gateway.add_transfer("vanished", clock.timestamp(6), ONE_SOL)
    del gateway.transactions["vanished"]

    assert await reconciler.verify(record.id) is True
    assert ledger.get(record.id).matched_tx_ref == "good"


@pytest.mark.asyncio
async def test_gateway_failure_degrades_to_false(
    ledger, reconciler, gateway, gateway_errors, unavailable
):
    record = ledger.create("u1", ONE_SOL)
    gateway.fail_with = unavailable

    assert await reconciler.verify(record.id) is False
    assert await reconciler.verify(record.id) is False

    assert ledger.get(record.id).status is PaymentStatus.PENDING
    assert gateway_errors == [(record.id, unavailable), (record.id, unavailable)]
    health = reconciler.health.snapshot()
    assert health.status is GatewayStatus.DEGRADED
    assert health.consecutive_failures == 2
    assert "timeout" in health.last_error


@pytest.mark.asyncio
async def test_gateway_recovery_resets_failure_count(
    ledger, reconciler, gateway, clock, unavailable
):
    record = ledger.create("u1", ONE_SOL)
    gateway.fail_with = unavailable
    await reconciler.verify(record.id)

    gateway.fail_with = None
    gateway.add_transfer("sig-1", clock.timestamp(5), ONE_SOL)

    assert await reconciler.verify(record.id) is True
    health = reconciler.health.snapshot()
    assert health.status is GatewayStatus.OK
    assert health.consecutive_failures == 0
    assert health.last_success_at == clock.now


@pytest.mark.asyncio
async def test_transaction_fetch_failure_degrades_to_false(
    ledger, reconciler, gateway, clock, mocker
):
    record = ledger.create("u1", ONE_SOL)
    gateway.add_transfer("sig-1", clock.timestamp(5), ONE_SOL)
    mocker.patch.object(
        gateway, "get_transaction", side_effect=GatewayUnavailable("boom")
    )

    assert await reconciler.verify(record.id) is False
    assert ledger.get(record.id).status is PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_unknown_id_raises_not_found(reconciler):
    with pytest.raises(NotFound):
        await reconciler.verify("payment_missing")


@pytest.mark.asyncio
async def test_signature_window_is_passed_to_gateway(ledger, gateway):
    reconciler = Reconciler(
        ledger, gateway, AmountMatchEngine(TREASURY), TREASURY, signature_window=25
    )
    record = ledger.create("u1", ONE_SOL)

    await reconciler.verify(record.id)

    assert gateway.signature_calls == [(TREASURY, 25)]


@pytest.mark.asyncio
async def test_custom_strategy_is_used(ledger, gateway, clock):
    class MemoStrategy:
        def __init__(self):
            self.seen = []

        def match(self, record, transactions):
            self.seen.extend(tx.signature for tx in transactions)
            return MatchProof(tx_ref="memo-sig", amount_received=1, block_time=None)

    strategy = MemoStrategy()
    reconciler = Reconciler(ledger, gateway, strategy, TREASURY)
    record = ledger.create("u1", ONE_SOL)
    gateway.add_transfer("memo-sig", clock.timestamp(5), 1)

    assert await reconciler.verify(record.id) is True
    assert strategy.seen == ["memo-sig"]
    assert ledger.get(record.id).matched_tx_ref == "memo-sig"


@pytest.mark.asyncio
async def test_confirmation_losing_to_concurrent_expiry(ledger, gateway, clock):
    class ExpiringStrategy:
        """Expires the record mid-pass, as a concurrent verify would."""

        def match(self, record, transactions):
            ledger.transition(record.id, PaymentStatus.EXPIRED)
            return MatchProof(tx_ref="sig-1", amount_received=ONE_SOL, block_time=None)

    reconciler = Reconciler(ledger, gateway, ExpiringStrategy(), TREASURY)
    record = ledger.create("u1", ONE_SOL)

    assert await reconciler.verify(record.id) is False
    assert ledger.get(record.id).status is PaymentStatus.EXPIRED


@pytest.mark.asyncio
async def test_in_flight_confirmation_is_honored_past_deadline(ledger, gateway, clock):
    class SlowStrategy:
        """The deadline passes while the pass is running."""

        def match(self, record, transactions):
            clock.advance(minutes=45)
            return MatchProof(tx_ref="sig-1", amount_received=ONE_SOL, block_time=None)

    reconciler = Reconciler(ledger, gateway, SlowStrategy(), TREASURY)
    record = ledger.create("u1", ONE_SOL)

    assert await reconciler.verify(record.id) is True
    assert ledger.get(record.id).status is PaymentStatus.CONFIRMED


def rpc_result(result):
    return httpx.Response(
        200,
        json={"jsonrpc": "2.0", "id": 1, "result": result},
        request=httpx.Request("POST", RPC_URL),
    )


def malformed_ledger(mocker, block_time):
    """Serves one treasury signature whose transaction has a null account key."""

    def post(url, json):
        if json["method"] == "getSignaturesForAddress":
            return rpc_result(
                [{"signature": "sig-bad", "blockTime": block_time, "err": None}]
            )
        return rpc_result(
            {
                "blockTime": block_time,
                "meta": {"err": None, "preBalances": [0], "postBalances": [ONE_SOL]},
                "transaction": {"message": {"accountKeys": [None]}},
            }
        )

    return mocker.patch(
        "httpx.AsyncClient.post", new_callable=AsyncMock, side_effect=post
    )


@pytest.mark.asyncio
async def test_malformed_transaction_payload_stays_pending(ledger, clock, mocker):
    mock_post = malformed_ledger(mocker, clock.timestamp(5))
    reconciler = Reconciler(
        ledger, SolanaRpcGateway(RPC_URL), AmountMatchEngine(TREASURY), TREASURY
    )
    record = ledger.create("u1", ONE_SOL)

    assert await reconciler.verify(record.id) is False

    assert ledger.get(record.id).status is PaymentStatus.PENDING
    assert reconciler.health.snapshot().status is GatewayStatus.OK
    assert [c.kwargs["json"]["method"] for c in mock_post.call_args_list] == [
        "getSignaturesForAddress",
        "getTransaction",
    ]


@pytest.mark.asyncio
async def test_malformed_transaction_payload_does_not_fail_watch(
    ledger, clock, mocker, fake_sleep
):
    malformed_ledger(mocker, clock.timestamp(5))
    reconciler = Reconciler(
        ledger, SolanaRpcGateway(RPC_URL), AmountMatchEngine(TREASURY), TREASURY
    )
    record = ledger.create("u1", ONE_SOL)
    fake_sleep.hooks = [lambda: clock.advance(minutes=31)]

    watcher = ConfirmationWatcher(record.id, reconciler, ledger, 15.0, sleep=fake_sleep)
    outcome = await watcher.start().wait()

    assert outcome.state is WatchState.EXPIRED
    assert outcome.error is None
    assert watcher.checks == 2
