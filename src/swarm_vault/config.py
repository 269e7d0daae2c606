"""Configuration surface for the swarm vault engine.

Values load from environment variables prefixed with ``SWARM_VAULT_`` and
nested sections use ``__`` as delimiter, e.g.::

    SWARM_VAULT_CHAIN__BUNDLER_URL=https://rpc.zerodev.app/api/v3/<id>/chain/84532
    SWARM_VAULT_EXECUTION__ZERO_BALANCE_POLICY=exclude
    SWARM_VAULT_POLLER__INTERVAL_SECONDS=10
"""
from __future__ import annotations

from enum import Enum
from functools import lru_cache
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ERC-4337 EntryPoint v0.6, same address on every EVM chain
DEFAULT_ENTRYPOINT = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"

LIT_RELAY_URLS: dict[str, str] = {
    "naga-dev": "https://naga-dev-relayer.getlit.dev",
    "naga-test": "https://naga-test-relayer.getlit.dev",
    "naga": "https://naga-relayer.getlit.dev",
}


class ZeroBalancePolicy(str, Enum):
    """What to do with a member whose balance-derived amount resolves to zero."""
    FAIL = "fail"  # record a FAILED target with "no balance to transfer"
    EXCLUDE = "exclude"  # create no target for the member
    ALLOW = "allow"  # submit the zero-amount call anyway


class ChainSettings(BaseModel):
    """Chain and ERC-4337 endpoints."""
    chain_id: int = 84532
    rpc_url: str = "https://sepolia.base.org"
    bundler_url: str = ""
    paymaster_url: str = ""
    entrypoint: str = DEFAULT_ENTRYPOINT
    request_timeout_seconds: float = 30.0


class LitSettings(BaseModel):
    """Lit Protocol relay used as the delegated threshold signer."""
    network: Literal["naga-dev", "naga-test", "naga"] = "naga-dev"
    relay_url: str = ""
    api_key: str = ""
    default_key_handle: str = ""

    def get_relay_url(self) -> str:
        return self.relay_url or LIT_RELAY_URLS[self.network]


class ExecutionSettings(BaseModel):
    """Per-dispatch execution limits."""
    max_concurrency: int = Field(default=8, ge=1)
    context_timeout_seconds: float = Field(default=15.0, gt=0)
    signer_timeout_seconds: float = Field(default=30.0, gt=0)
    bundler_timeout_seconds: float = Field(default=30.0, gt=0)
    zero_balance_policy: ZeroBalancePolicy = ZeroBalancePolicy.FAIL


class PollerSettings(BaseModel):
    """Confirmation poller schedule."""
    interval_seconds: float = Field(default=10.0, gt=0)
    status_timeout_seconds: float = Field(default=10.0, gt=0)
    # Targets non-terminal for longer than this are failed; 0 disables
    target_timeout_seconds: float = Field(default=1800.0, ge=0)


class LoggingSettings(BaseModel):
    level: str = "INFO"
    json_format: bool = False
    mask_addresses: bool = False

    @field_validator("level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return v


class SwarmVaultSettings(BaseSettings):
    """Main engine configuration."""

    environment: Literal["dev", "test", "prod"] = "dev"

    chain: ChainSettings = Field(default_factory=ChainSettings)
    lit: LitSettings = Field(default_factory=LitSettings)
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
    poller: PollerSettings = Field(default_factory=PollerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    # Block timestamp memoization shared by all members of a dispatch
    context_cache_ttl_seconds: float = Field(default=2.0, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="SWARM_VAULT_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )


@lru_cache
def get_settings() -> SwarmVaultSettings:
    """Load settings once per process."""
    return SwarmVaultSettings()
