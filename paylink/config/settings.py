"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from decimal import Decimal

from loguru import logger
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from paylink.config.constants import (
    DEFAULT_DEPLOY_GAS_LIMIT,
    DEFAULT_EXPIRATION_DAYS,
    DEFAULT_PRE_VERIFICATION_GAS,
    DEFAULT_TRANSFER_GAS_LIMIT,
    DEFAULT_VERIFICATION_GAS_LIMIT,
    EXTERNAL_CALL_TIMEOUT,
    EXTERNAL_MAX_RETRIES,
    MAX_EXPIRATION_DAYS,
    TOKEN_DECIMALS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False

    # Chain
    chain_id: int = Field(default=8453, gt=0, description="EVM chain id (Base mainnet)")
    rpc_url: str = "https://mainnet.base.org"
    entry_point_address: str = "0x5ff137d4b0fdcd49dca30c7cf57e578a026d2789"
    account_factory_address: str = "0x9406cc6185a346906296840746125a0e44976454"
    token_contract_address: str = "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"
    token_symbol: str = "USDC"
    token_decimals: int = Field(default=TOKEN_DECIMALS, ge=0, le=18)

    # Paymaster / gas sponsorship
    paymaster_enabled: bool = False
    paymaster_address: str = "0x0000000000000000000000000000000000000000"
    sponsor_api_url: str | None = None
    sponsor_api_key: str | None = None
    sponsor_new_accounts: bool = True
    sponsor_limit_per_account: int = Field(
        default=3, ge=0, description="Lifetime sponsored operations per account"
    )
    native_token_price: Decimal = Field(
        default=Decimal("2000"), gt=0,
        description="Native token price in token units, used for gas fee estimates"
    )

    # Relay (bundler)
    bundler_url: str | None = None

    # Gas limits
    transfer_gas_limit: int = Field(default=DEFAULT_TRANSFER_GAS_LIMIT, gt=0)
    deploy_gas_limit: int = Field(default=DEFAULT_DEPLOY_GAS_LIMIT, gt=0)
    verification_gas_limit: int = Field(default=DEFAULT_VERIFICATION_GAS_LIMIT, gt=0)
    pre_verification_gas: int = Field(default=DEFAULT_PRE_VERIFICATION_GAS, gt=0)

    # Escrow payments
    default_expiration_days: int = Field(
        default=DEFAULT_EXPIRATION_DAYS, ge=1, le=MAX_EXPIRATION_DAYS
    )
    max_expiration_days: int = Field(default=MAX_EXPIRATION_DAYS, ge=1)
    claim_base_url: str = "https://app.paylink.example/claim"
    sweep_batch_size: int = Field(default=200, gt=0)

    # Scheduler
    sweep_interval_minutes: int = Field(default=5, gt=0)
    stale_check_interval_minutes: int = Field(default=15, gt=0)
    stale_after_minutes: int = Field(default=15, gt=0)
    health_port: int = 8081

    # External calls
    external_call_timeout: float = Field(default=EXTERNAL_CALL_TIMEOUT, gt=0)
    external_max_retries: int = Field(default=EXTERNAL_MAX_RETRIES, ge=1, le=10)

    # Redis (dramatiq broker)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0
    job_max_retries: int = Field(default=3, ge=0)

    # Application
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    log_file: str = "logs/paylink.log"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator(
        "entry_point_address",
        "account_factory_address",
        "token_contract_address",
        "paymaster_address",
    )
    @classmethod
    def validate_eth_address(cls, v: str) -> str:
        """Validate Ethereum address format."""
        if not v.startswith("0x") or len(v) != 42:
            raise ValueError(
                f"Invalid Ethereum address: {v}. "
                "Must start with 0x and be 42 characters long."
            )
        try:
            int(v[2:], 16)
        except ValueError as exc:
            raise ValueError(f"Invalid Ethereum address format: {v}") from exc
        return v.lower()

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL uses an async driver."""
        if not v.startswith(("postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError(
                "DATABASE_URL must start with postgresql+asyncpg:// "
                "or sqlite+aiosqlite://"
            )
        return v

    @model_validator(mode="after")
    def validate_consistency(self) -> "Settings":
        """Cross-field checks."""
        if self.default_expiration_days > self.max_expiration_days:
            raise ValueError(
                "DEFAULT_EXPIRATION_DAYS cannot exceed MAX_EXPIRATION_DAYS"
            )
        if self.paymaster_enabled and not self.sponsor_api_url:
            logger.warning(
                "PAYMASTER_ENABLED is set but SPONSOR_API_URL is empty; "
                "all operations will be sent unsponsored"
            )
        if self.environment == "production" and self.debug:
            raise ValueError(
                "DEBUG must be False in production environment. "
                "Set DEBUG=false in your .env file."
            )
        return self

    @property
    def is_sqlite(self) -> bool:
        """True when running on the SQLite driver (tests, local runs)."""
        return self.database_url.startswith("sqlite")


def load_settings(**overrides) -> Settings:
    """
    Build settings from the environment.

    Args:
        **overrides: Explicit values taking precedence over the environment

    Returns:
        Settings instance owned by the caller
    """
    return Settings(**overrides)
