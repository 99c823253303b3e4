"""
Configuration and settings for the Fantasy Flicks backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service and worker."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database (any SQLAlchemy URL; Postgres in production)
    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, alias="FANTASY_USE_IN_MEMORY_BACKENDS"
    )

    cors_origins: list[str] = Field(
        default=[
            "http://localhost:5173",
            "http://localhost:3000",
            "http://localhost:4173",
        ],
        alias="CORS_ORIGINS",
    )

    # Game rules
    admin_address: str = Field(
        default="0x8216474eC890bb0E1bFab1278b5aab995cDf4b67", alias="ADMIN_ADDRESS"
    )
    initial_points: int = Field(default=20000, alias="INITIAL_POINTS")
    points_per_movie: int = Field(default=10, alias="POINTS_PER_MOVIE")
    points_per_scene: int = Field(default=0, alias="POINTS_PER_SCENE")
    points_topup_batch_size: int = Field(default=500, alias="POINTS_TOPUP_BATCH_SIZE")

    # Queue (Redis)
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")
    redis_queue_key: str = Field(default="fantasy:jobs", alias="REDIS_QUEUE_KEY")

    # S3-compatible storage for performer images
    s3_endpoint: Optional[str] = Field(default=None, alias="S3_ENDPOINT")
    s3_region: Optional[str] = Field(default=None, alias="S3_REGION")
    s3_bucket: Optional[str] = Field(default=None, alias="S3_BUCKET")
    aws_access_key_id: Optional[str] = Field(default=None, alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: Optional[str] = Field(
        default=None, alias="AWS_SECRET_ACCESS_KEY"
    )

    # Chain the wallet is asked to switch to
    chain_id: int = Field(default=11297108109, alias="CHAIN_ID")
    chain_name: str = Field(default="Palm Network", alias="CHAIN_NAME")
    chain_currency_name: str = Field(default="PALM", alias="CHAIN_CURRENCY_NAME")
    chain_currency_symbol: str = Field(default="PALM", alias="CHAIN_CURRENCY_SYMBOL")
    chain_rpc_url: str = Field(
        default="https://palm-mainnet.public.blastapi.io", alias="CHAIN_RPC_URL"
    )
    chain_explorer_url: str = Field(
        default="https://explorer.palm.io", alias="CHAIN_EXPLORER_URL"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
