"""
Configuration management using pydantic-settings.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from tapwallet.constants import (
    DEFAULT_EXPLORER_URL,
    DEFAULT_FEE_RATE,
    DEFAULT_NETWORK_ID,
    DEFAULT_REGISTRY_URL,
    DUST_THRESHOLD,
)


class FundingPolicy(str, Enum):
    """How the issue leg of a two-transaction issuance waits for its funding leg."""

    IMMEDIATE = "immediate"
    WAIT = "wait"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TAPWALLET_", env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    network: Literal["prod", "dev"] = "dev"
    network_id: int = Field(default=DEFAULT_NETWORK_ID, ge=1, lt=0x80000000)
    key_index: int = Field(default=0, ge=0, lt=0x80000000)

    explorer_url: str = DEFAULT_EXPLORER_URL
    registry_url: str = DEFAULT_REGISTRY_URL
    request_timeout: float = Field(default=30.0, gt=0)

    fee_rate: int = Field(default=DEFAULT_FEE_RATE, ge=1, description="tapyrus per byte")
    dust_threshold: int = Field(default=DUST_THRESHOLD, ge=0)

    funding_policy: FundingPolicy = FundingPolicy.IMMEDIATE
    funding_poll_interval: float = Field(default=2.0, ge=0)
    funding_poll_attempts: int = Field(default=15, ge=1)

    metadata_cache_ttl: float = Field(default=600.0, gt=0)
    metadata_cache_size: int = Field(default=256, ge=1)

    log_level: str = "INFO"


def get_settings() -> Settings:
    return Settings()
