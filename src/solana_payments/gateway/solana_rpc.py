"""
Solana JSON-RPC ledger gateway.
Fetches signature listings and transaction balances over httpx.
"""

import itertools
from typing import Any

import httpx
import structlog

from ..errors import GatewayUnavailable
from ..models import SignatureInfo, TransactionDetail

logger = structlog.get_logger(__name__)

# Solana RPC commitment levels
CONFIRMED_COMMITMENT = "confirmed"  # Voted on by a supermajority of the cluster


class SolanaRpcGateway:
    """
    LedgerGateway backed by a Solana JSON-RPC endpoint.

    Only the two calls reconciliation needs are implemented:
    ``getSignaturesForAddress`` and ``getTransaction``.
    """

    def __init__(
        self,
        rpc_url: str,
        commitment: str = CONFIRMED_COMMITMENT,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the gateway.

        Args:
            rpc_url: Solana RPC endpoint URL
            commitment: Commitment level for every query
            timeout: HTTP timeout in seconds (ignored when ``client`` is given)
            client: Pre-built HTTP client, mainly for tests
        """
        self.rpc_url = rpc_url
        self.commitment = commitment
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self._request_ids = itertools.count(1)

        logger.info(
            "solana_gateway_initialized", rpc_url=rpc_url, commitment=commitment
        )

    async def list_recent_signatures(
        self, address: str, limit: int
    ) -> list[SignatureInfo]:
        result = await self._call(
            "getSignaturesForAddress",
            [address, {"limit": limit, "commitment": self.commitment}],
        )
        if not isinstance(result, list):
            raise GatewayUnavailable(
                f"Unexpected getSignaturesForAddress result: {type(result).__name__}"
            )

        signatures = []
        for entry in result:
            if not isinstance(entry, dict) or not entry.get("signature"):
                logger.warning("signature_entry_malformed", entry=entry)
                continue
            signatures.append(
                SignatureInfo(
                    signature=entry["signature"],
                    block_time=entry.get("blockTime"),
                    failed=entry.get("err") is not None,
                )
            )
        return signatures

    async def get_transaction(self, signature: str) -> TransactionDetail | None:
        result = await self._call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "commitment": self.commitment,
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )
        if not result:
            return None
        try:
            return self._parse_transaction(signature, result)
        except (KeyError, ValueError, TypeError, IndexError, AttributeError) as e:
            logger.warning(
                "transaction_malformed", signature=signature, error=str(e)
            )
            return TransactionDetail(signature=signature, succeeded=False)

    async def _call(self, method: str, params: list[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params,
        }

        try:
            response = await self.client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            data = response.json()
        except (httpx.RequestError, httpx.HTTPStatusError) as e:
            raise GatewayUnavailable(f"{method} request failed: {e}") from e
        except ValueError as e:
            raise GatewayUnavailable(f"{method} returned invalid JSON") from e

        if not isinstance(data, dict):
            raise GatewayUnavailable(f"{method} returned a non-object body")
        if "error" in data:
            raise GatewayUnavailable(f"{method} RPC error: {data['error']}")
        return data.get("result")

    def _parse_transaction(
        self, signature: str, tx: dict[str, Any]
    ) -> TransactionDetail:
        """
        Reduces a ``getTransaction`` result to per-account balance pairs.

        Account keys are plain strings in ``json`` encoding and
        ``{"pubkey": ...}`` objects in ``jsonParsed`` encoding. Mismatched
        balance arrays yield an empty mapping; unusable key entries are skipped.
        """
        meta = tx.get("meta")
        block_time = tx.get("blockTime")
        if not isinstance(meta, dict):
            return TransactionDetail(
                signature=signature, succeeded=False, block_time=block_time
            )

        message = (tx.get("transaction") or {}).get("message") or {}
        account_keys = message.get("accountKeys") or []
        pre_balances = meta.get("preBalances") or []
        post_balances = meta.get("postBalances") or []

        balances: dict[str, tuple[int, int]] = {}
        if len(account_keys) == len(pre_balances) == len(post_balances):
            for key_info, pre, post in zip(account_keys, pre_balances, post_balances):
                if isinstance(key_info, dict):
                    pubkey = key_info.get("pubkey")
                else:
                    pubkey = key_info
                if isinstance(pubkey, str) and pubkey:
                    balances[pubkey] = (pre, post)
        else:
            logger.warning(
                "transaction_balances_mismatched",
                signature=signature,
                keys=len(account_keys),
                pre=len(pre_balances),
                post=len(post_balances),
            )

        return TransactionDetail(
            signature=signature,
            succeeded=meta.get("err") is None,
            balances=balances,
            block_time=block_time,
        )

    async def close(self) -> None:
        """Closes the HTTP client connection."""
        await self.client.aclose()
