"""Application settings and configuration.

This module defines all configuration options for the Learn2Earn Stage backend.
Settings are loaded from environment variables with sensible defaults.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    Secrets (moderator key, distribution key) are never echoed back by any
    endpoint or log line.
    """

    # Application metadata
    app_name: str = Field(default="Learn2Earn Stage", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./submissions.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Moderator access; moderator routes reject every request while unset
    moderator_key: str | None = Field(default=None, alias="MODERATOR_KEY")

    # Status cache shielding the ledger from high-frequency polling
    status_cache_backend: Literal["memory", "redis"] = Field(
        default="memory",
        alias="STATUS_CACHE_BACKEND",
    )
    status_cache_ttl_seconds: float = Field(default=5.0, alias="STATUS_CACHE_TTL_SECONDS")
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")

    # Ledger (JSON-RPC node and reward contract)
    ledger_rpc_url: str = Field(default="http://localhost:8545", alias="LEDGER_RPC_URL")
    ledger_contract_address: str = Field(default=ZERO_ADDRESS, alias="LEDGER_CONTRACT_ADDRESS")
    ledger_chain_id: int | None = Field(default=None, alias="LEDGER_CHAIN_ID")
    ledger_private_key: str | None = Field(default=None, alias="LEDGER_PRIVATE_KEY")
    ledger_http_timeout_seconds: float = Field(
        default=10.0,
        alias="LEDGER_HTTP_TIMEOUT_SECONDS",
    )
    ledger_gas_limit: int = Field(default=200_000, alias="LEDGER_GAS_LIMIT")
    explorer_tx_url: str = Field(
        default="https://explore-testnet.vechain.org/transactions/{tx_reference}",
        alias="EXPLORER_TX_URL",
    )

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.
        """
        url = self.database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    def explorer_url_for(self, tx_reference: str | None) -> str | None:
        """Return the block explorer link for a transaction reference, if any."""
        if not tx_reference:
            return None
        return self.explorer_tx_url.format(tx_reference=tx_reference)


settings = Settings()
