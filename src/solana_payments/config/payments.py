from pydantic import BaseModel, Field, field_validator
from solders.pubkey import Pubkey  # type: ignore


class PaymentSettings(BaseModel):
    """Payment request lifecycle and matching configuration."""

    # Single shared receiving address (base58 public key)
    treasury_address: str

    payment_timeout_seconds: int = Field(1800, gt=0)  # 30 minutes
    poll_interval_seconds: float = Field(15.0, gt=0)
    match_tolerance_units: int = Field(1000, gt=0)  # lamports
    signature_window: int = Field(10, gt=0, le=1000)

    # Terminal records older than this are reclaimed by the sweep
    retention_seconds: int = Field(86400, gt=0)  # 1 day

    @field_validator("treasury_address")
    @classmethod
    def validate_treasury_address(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("SOLPAY_PAYMENTS__TREASURY_ADDRESS is required")
        try:
            Pubkey.from_string(value)
        except ValueError as e:
            raise ValueError(f"Invalid treasury wallet public key: {value}") from e
        return value
