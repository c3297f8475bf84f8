from typing import Literal

from pydantic import BaseModel, Field, HttpUrl

# Public RPC endpoints per cluster
CLUSTER_URLS = {
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
}


class LedgerSettings(BaseModel):
    network: Literal["mainnet-beta", "devnet", "testnet"] = "devnet"
    rpc_url: HttpUrl | None = None  # Overrides the public cluster URL
    commitment: Literal["processed", "confirmed", "finalized"] = "confirmed"
    request_timeout_seconds: float = Field(30.0, gt=0)

    @property
    def resolved_rpc_url(self) -> str:
        if self.rpc_url is not None:
            return str(self.rpc_url)
        return CLUSTER_URLS[self.network]
