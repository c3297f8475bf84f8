from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .ledger import CLUSTER_URLS, LedgerSettings
from .payments import PaymentSettings
from .telemetry import TelemetrySettings


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        env_prefix="SOLPAY_",
        extra="ignore",
    )

    payments: PaymentSettings
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore


__all__ = [
    "CLUSTER_URLS",
    "LedgerSettings",
    "PaymentSettings",
    "Settings",
    "TelemetrySettings",
    "get_settings",
]
