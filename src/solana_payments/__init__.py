"""Payment request lifecycle and treasury reconciliation for Solana."""

from .errors import (
    ConflictingState,
    GatewayUnavailable,
    InvalidArgument,
    NotFound,
    PaymentError,
)
from .gateway import LedgerGateway, SolanaRpcGateway
from .ledger import PaymentLedger
from .matching import AmountMatchEngine, MatchStrategy
from .models import (
    PaymentInstructions,
    PaymentRequest,
    PaymentStatus,
    PendingPaymentSummary,
    WatchOutcome,
    WatchState,
)
from .reconciler import Reconciler
from .service import PaymentService
from .store import InMemoryPaymentStore, PaymentStore
from .watcher import ConfirmationWatcher

__all__ = [
    "AmountMatchEngine",
    "ConfirmationWatcher",
    "ConflictingState",
    "GatewayUnavailable",
    "InMemoryPaymentStore",
    "InvalidArgument",
    "LedgerGateway",
    "MatchStrategy",
    "NotFound",
    "PaymentError",
    "PaymentInstructions",
    "PaymentLedger",
    "PaymentRequest",
    "PaymentService",
    "PaymentStatus",
    "PaymentStore",
    "PendingPaymentSummary",
    "Reconciler",
    "SolanaRpcGateway",
    "WatchOutcome",
    "WatchState",
]
