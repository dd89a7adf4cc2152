"""
Store Adapter — the list / sorted-set operations the queue is built on.

Two implementations:
  RedisStore      — production, backed by redis.asyncio
  InMemoryStore   — development/tests, single event loop, no persistence

Operations used by the queue:
  list_push_tail            RPUSH            (Producer.publish)
  list_pop_head             LPOP             (immediate loop)
  sorted_set_add            ZADD             (Producer.publish_delay_msg)
  sorted_set_pop_by_score   MULTI
                              ZRANGEBYSCORE … WITHSCORES
                              ZREMRANGEBYSCORE
                            EXEC             (delayed loop)
"""
from __future__ import annotations

import structlog
from abc import ABC, abstractmethod
from collections import deque
from typing import Optional, Union

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from topic_queue.errors import StoreError

logger = structlog.get_logger()

Payload = Union[bytes, str]


def _as_bytes(payload: Payload) -> bytes:
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return payload


# ──────────────────────────────────────────────────────────────
#  Abstract Interface
# ──────────────────────────────────────────────────────────────

class StoreAdapter(ABC):
    """Abstract list + sorted-set store shared by producers and consumers."""

    @abstractmethod
    async def list_push_tail(self, key: str, payload: Payload) -> None:
        """Append a payload to the tail of a list."""
        ...

    @abstractmethod
    async def list_pop_head(self, key: str) -> Optional[bytes]:
        """Pop the head of a list. Returns None when the list is empty."""
        ...

    @abstractmethod
    async def sorted_set_add(self, key: str, score: float, payload: Payload) -> None:
        """Add a member to a sorted set (updates the score if already present)."""
        ...

    @abstractmethod
    async def sorted_set_pop_by_score(
        self, key: str, min_score: float, max_score: float,
    ) -> list[tuple[bytes, float]]:
        """
        Return every member with min_score <= score <= max_score, ordered by
        score, and remove them from the set.

        Must run as one serialized unit against the key: two concurrent calls
        never both return the same member. Any substitute store has to provide
        this, otherwise delayed messages can be delivered twice.
        """
        ...

    @abstractmethod
    async def list_length(self, key: str) -> int:
        ...

    @abstractmethod
    async def sorted_set_size(self, key: str) -> int:
        ...

    async def close(self) -> None:
        """Release connections held by the store."""
        pass


# ──────────────────────────────────────────────────────────────
#  Redis Implementation
# ──────────────────────────────────────────────────────────────

class RedisStore(StoreAdapter):
    """
    Production store backed by a Redis server.

    The client is created lazily by redis-py and shared by every producer
    and consumer handed this store; redis.asyncio pools connections itself.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        *,
        client: Optional[aioredis.Redis] = None,
        max_connections: int = 20,
    ):
        self._redis_url = redis_url
        if client is None:
            client = aioredis.from_url(
                redis_url,
                decode_responses=False,
                max_connections=max_connections,
            )
        self._redis = client

    @property
    def client(self) -> aioredis.Redis:
        return self._redis

    async def connect(self) -> None:
        """Verify the server is reachable."""
        try:
            await self._redis.ping()
        except RedisError as e:
            raise StoreError(f"redis ping failed: {e}") from e
        logger.info("redis_store_connected", url=self._redis_url)

    async def close(self) -> None:
        await self._redis.aclose()

    async def list_push_tail(self, key: str, payload: Payload) -> None:
        try:
            await self._redis.rpush(key, _as_bytes(payload))
        except RedisError as e:
            raise StoreError(f"RPUSH {key} failed: {e}") from e

    async def list_pop_head(self, key: str) -> Optional[bytes]:
        try:
            return await self._redis.lpop(key)
        except RedisError as e:
            raise StoreError(f"LPOP {key} failed: {e}") from e

    async def sorted_set_add(self, key: str, score: float, payload: Payload) -> None:
        try:
            await self._redis.zadd(key, {_as_bytes(payload): score})
        except RedisError as e:
            raise StoreError(f"ZADD {key} failed: {e}") from e

    async def sorted_set_pop_by_score(
        self, key: str, min_score: float, max_score: float,
    ) -> list[tuple[bytes, float]]:
        # MULTI/EXEC: Redis runs the queued commands back to back, so the
        # range we read is exactly the range we remove.
        pipe = self._redis.pipeline(transaction=True)
        pipe.zrangebyscore(key, min_score, max_score, withscores=True)
        pipe.zremrangebyscore(key, min_score, max_score)
        try:
            members, _removed = await pipe.execute()
        except RedisError as e:
            raise StoreError(f"ZRANGEBYSCORE/ZREMRANGEBYSCORE {key} failed: {e}") from e
        return [(member, float(score)) for member, score in members]

    async def list_length(self, key: str) -> int:
        try:
            return await self._redis.llen(key)
        except RedisError as e:
            raise StoreError(f"LLEN {key} failed: {e}") from e

    async def sorted_set_size(self, key: str) -> int:
        try:
            return await self._redis.zcard(key)
        except RedisError as e:
            raise StoreError(f"ZCARD {key} failed: {e}") from e


# ──────────────────────────────────────────────────────────────
#  In-Memory Implementation (Development)
# ──────────────────────────────────────────────────────────────

class InMemoryStore(StoreAdapter):
    """
    Development/test store backed by plain dicts.
    Single event loop only; nothing is shared across processes.
    """

    def __init__(self):
        self._lists: dict[str, deque[bytes]] = {}
        self._zsets: dict[str, dict[bytes, float]] = {}

    async def list_push_tail(self, key: str, payload: Payload) -> None:
        self._lists.setdefault(key, deque()).append(_as_bytes(payload))

    async def list_pop_head(self, key: str) -> Optional[bytes]:
        items = self._lists.get(key)
        if not items:
            return None
        return items.popleft()

    async def sorted_set_add(self, key: str, score: float, payload: Payload) -> None:
        self._zsets.setdefault(key, {})[_as_bytes(payload)] = float(score)

    async def sorted_set_pop_by_score(
        self, key: str, min_score: float, max_score: float,
    ) -> list[tuple[bytes, float]]:
        # No await between the range and the removal: atomic on one event loop.
        zset = self._zsets.get(key, {})
        due = sorted(
            ((member, score) for member, score in zset.items()
             if min_score <= score <= max_score),
            key=lambda item: (item[1], item[0]),
        )
        for member, _ in due:
            del zset[member]
        return due

    async def list_length(self, key: str) -> int:
        return len(self._lists.get(key, ()))

    async def sorted_set_size(self, key: str) -> int:
        return len(self._zsets.get(key, {}))
