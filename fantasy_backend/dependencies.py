"""
Dependency wiring for the FastAPI app and the worker.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from fastapi import Depends, Header, HTTPException

from fantasy_backend.config import get_settings
from fantasy_backend.db import DbClient, InMemoryDbClient
from fantasy_backend.queue import InMemoryJobQueue, JobQueue, RedisJobQueue
from fantasy_backend.sql_db import SqlDbClient
from fantasy_backend.storage import (
    InMemoryStorageClient,
    S3StorageClient,
    StorageClient,
)

logger = logging.getLogger(__name__)

WALLET_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None
_queue_client: JobQueue | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        logger.info("Using in-memory database")
        _db_client = InMemoryDbClient()
    else:
        _db_client = SqlDbClient(settings.database_url)
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.s3_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    return _storage_client


def get_queue_client() -> JobQueue:
    """
    Return a singleton queue client for dispatching jobs to workers.
    """
    global _queue_client
    if _queue_client:
        return _queue_client

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _queue_client = RedisJobQueue(
            url=settings.redis_url,
            queue_key=settings.redis_queue_key,
        )
    else:
        _queue_client = InMemoryJobQueue()
    return _queue_client


def normalize_address(address: str) -> str:
    if not address or not WALLET_ADDRESS_PATTERN.match(address):
        raise HTTPException(status_code=400, detail="Invalid wallet address")
    return address.lower()


def get_wallet_address(
    x_wallet_address: Optional[str] = Header(None),
) -> str:
    """The connected wallet, sent by the client in the X-Wallet-Address header."""
    if not x_wallet_address:
        raise HTTPException(status_code=401, detail="Please connect your wallet")
    return normalize_address(x_wallet_address)


def is_admin_address(address: Optional[str]) -> bool:
    if not address:
        return False
    return address.lower() == get_settings().admin_address.lower()


def require_admin(address: str = Depends(get_wallet_address)) -> str:
    if not is_admin_address(address):
        logger.warning("Admin route refused for %s", address)
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    return address
