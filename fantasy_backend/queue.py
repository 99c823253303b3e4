"""
Job dispatch between the API (which records and enqueues admin jobs) and the worker.

An in-memory FIFO serves tests and single-process runs; Redis carries job ids
between processes in production.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)


class JobQueue(Protocol):
    """Carries job ids; the job itself lives in the database."""

    def enqueue(self, job_id: str) -> None:
        ...

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        ...

    def depth(self) -> int:
        ...


@dataclass
class InMemoryJobQueue:
    items: deque = field(default_factory=deque)

    def enqueue(self, job_id: str) -> None:
        self.items.append(job_id)

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        if not self.items:
            return None
        return self.items.popleft()

    def depth(self) -> int:
        return len(self.items)


@dataclass
class RedisJobQueue:
    """Redis list used as a FIFO: RPUSH to enqueue, (B)LPOP to dequeue."""

    url: str
    queue_key: str = "fantasy:jobs"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def _reconnect(self) -> None:
        logger.warning("Redis connection lost; reconnecting to %s", self.queue_key)
        self.client = redis.Redis.from_url(self.url)

    def enqueue(self, job_id: str) -> None:
        self.client.rpush(self.queue_key, job_id)

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        try:
            if block:
                result = self.client.blpop(self.queue_key, timeout=timeout or 0)
                if result is None:
                    return None
                _, job_id = result
            else:
                job_id = self.client.lpop(self.queue_key)
                if job_id is None:
                    return None
            return job_id.decode("utf-8")
        except redis_exceptions.ConnectionError:
            # Managed Redis drops idle connections; the worker loop retries.
            self._reconnect()
            return None

    def depth(self) -> int:
        return int(self.client.llen(self.queue_key))
