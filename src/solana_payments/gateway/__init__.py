"""Ledger gateways: the interface the engine consumes and the Solana JSON-RPC adapter."""

from .interfaces import LedgerGateway
from .solana_rpc import SolanaRpcGateway

__all__ = ["LedgerGateway", "SolanaRpcGateway"]
