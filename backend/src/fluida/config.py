"""
Application configuration loaded from environment variables.

All configuration is validated at startup to fail fast on misconfiguration.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with validation.

    All settings are loaded from environment variables with the same name.
    Use .env file for local development.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = Field(
        description="SQLAlchemy async connection string, e.g. postgresql+asyncpg://..."
    )

    # Solana Configuration
    solana_network: Literal["devnet", "testnet", "mainnet"] = Field(
        default="devnet",
        description="Solana cluster to poll for payments"
    )
    solana_rpc_url: str | None = Field(
        default=None,
        description="Override the cluster's public RPC endpoint"
    )

    # Payment token. The mint has no default: it must be supplied per deployment.
    token_mint: str = Field(
        min_length=32,
        max_length=44,
        description="Mint address of the SPL token invoices are paid in"
    )
    token_symbol: str = Field(default="USDC", max_length=10)
    token_decimals: int = Field(default=6, ge=0, le=18)

    # Payment watcher
    watcher_enabled: bool = Field(
        default=True,
        description="Start the background payment watcher with the API"
    )
    poll_interval_seconds: float = Field(default=15.0, gt=0)
    cycle_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Time budget for one full poll cycle"
    )
    amount_tolerance: Decimal = Field(
        default=Decimal("0.001"),
        ge=0,
        description="Maximum deviation between transfer and invoice amount"
    )
    signature_limit: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Recent signatures fetched per receiver address"
    )

    # Server
    debug: bool = Field(
        default=False,
        description="Enable debug mode with detailed error messages"
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once at startup and cached for subsequent calls.
    This ensures consistent configuration across the application lifecycle.
    """
    return Settings()
