"""
Protocol-based interface for ledger access.
Keeps reconciliation independent of any particular RPC client.
"""

from typing import Protocol

from ..models import SignatureInfo, TransactionDetail


class LedgerGateway(Protocol):
    """
    Read-only view of the ledger consumed by the Reconciler.

    Implementations raise GatewayUnavailable on transport or RPC failures.
    """

    async def list_recent_signatures(
        self, address: str, limit: int
    ) -> list[SignatureInfo]:
        """
        Returns up to ``limit`` signatures touching ``address``.

        Returns:
            Signature entries ordered most-recent-first
        """
        ...

    async def get_transaction(self, signature: str) -> TransactionDetail | None:
        """
        Fetches transaction detail for a signature.

        Returns:
            TransactionDetail, or None if the ledger does not know the signature
        """
        ...
