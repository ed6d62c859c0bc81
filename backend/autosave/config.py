"""Application configuration management using Pydantic Settings."""

from typing import List
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import json


# keccak256("Transfer(address,address,uint256)")
ERC20_TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # API
    API_V1_PREFIX: str = "/api"

    # CORS
    CORS_ORIGINS: List[str] = ['http://localhost:3000']

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Savings vault (relayer-signed)
    SAVINGS_CHAIN_ID: int | None = None
    SAVINGS_RPC_URL: str = ""
    SAVINGS_VAULT_ADDRESS: str = ""
    SAVINGS_RELAYER_PRIVATE_KEY: str = ""  # Signs every vault transaction
    VAULT_CONFIRMATIONS: int = 1
    VAULT_CONFIRMATION_TIMEOUT_SECONDS: float = 120.0

    # Webhook detection
    TRANSFER_EVENT_SIGNATURE: str = ERC20_TRANSFER_TOPIC
    WATCHLIST_TTL_SECONDS: float = 300.0

    # Wallet defaults
    DEFAULT_CHAIN_ID: int = 44787  # Celo Alfajores
    DEFAULT_WITHDRAWAL_DELAY_SECONDS: int = 86400

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def convert_database_url(cls, v):
        """Convert postgresql:// to postgresql+asyncpg:// for async support."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v) -> List[str]:
        """Parse CORS_ORIGINS from JSON string to list."""
        if isinstance(v, str):
            return json.loads(v)
        return v

    @field_validator("TRANSFER_EVENT_SIGNATURE", mode="after")
    @classmethod
    def normalize_signature(cls, v: str) -> str:
        """Event topics are compared lower-cased."""
        return v.strip().lower()

    @field_validator("SAVINGS_CHAIN_ID", mode="before")
    @classmethod
    def parse_chain_id(cls, v):
        if v == "":
            return None
        return v


# Global settings instance
settings = Settings()
