"""
Store Provider — builds named stores once and wires producers/consumers to them.

Passed explicitly to whatever needs a queue; there is no module-level
instance to reach for.

Usage:
    settings = load_settings()
    provider = StoreProvider.from_settings(settings)
    producer = provider.producer()
    consumer = provider.consumer("invoices", stop_event=shutdown)
    ...
    await provider.close_all()
"""
from __future__ import annotations

import asyncio
import structlog
from typing import Optional

from config.settings import QueueConfig, RedisConfig, Settings
from topic_queue.consumer import Consumer, ConsumerOptions
from topic_queue.producer import Producer
from topic_queue.store import InMemoryStore, RedisStore, StoreAdapter

logger = structlog.get_logger()

DEFAULT_STORE = "default"


class StoreProvider:
    """
    Owns the shared store instances, one per configured name, each created
    on first use. "default" is built from the main redis section; other
    names come from the `stores` section of the settings.
    """

    def __init__(
        self,
        queue_config: Optional[QueueConfig] = None,
        redis_config: Optional[RedisConfig] = None,
        named_configs: Optional[dict[str, RedisConfig]] = None,
    ):
        self.queue_config = queue_config or QueueConfig()
        self.redis_configs: dict[str, RedisConfig] = dict(named_configs or {})
        self.redis_configs[DEFAULT_STORE] = redis_config or RedisConfig()
        self._stores: dict[str, StoreAdapter] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> StoreProvider:
        return cls(
            queue_config=settings.queue,
            redis_config=settings.redis,
            named_configs=settings.stores,
        )

    @property
    def redis_config(self) -> RedisConfig:
        return self.redis_configs[DEFAULT_STORE]

    def get(self, name: str = DEFAULT_STORE) -> StoreAdapter:
        """Return the store registered under `name`, creating it if needed."""
        store = self._stores.get(name)
        if store is None:
            config = self.redis_configs.get(name)
            if config is None:
                raise KeyError(f"no store configured under {name!r}")
            store = self._stores[name] = self._create(name, config)
        return store

    def _create(self, name: str, config: RedisConfig) -> StoreAdapter:
        backend = self.queue_config.store_backend

        if backend == "redis":
            store = RedisStore(
                redis_url=config.url,
                max_connections=config.max_connections,
            )
            logger.info("store_created", name=name, backend="redis", url=config.url)
        elif backend == "memory":
            store = InMemoryStore()
            logger.info("store_created", name=name, backend="memory")
        else:
            raise ValueError(f"unknown store backend: {backend!r}")

        return store

    def producer(self, store: str = DEFAULT_STORE) -> Producer:
        return Producer(self.get(store))

    def consumer(
        self,
        topic: str,
        *,
        store: str = DEFAULT_STORE,
        stop_event: Optional[asyncio.Event] = None,
    ) -> Consumer:
        return Consumer(
            self.get(store),
            topic,
            stop_event=stop_event,
            options=ConsumerOptions.from_config(self.queue_config),
        )

    async def close(self, name: str = DEFAULT_STORE) -> None:
        store = self._stores.pop(name, None)
        if store is not None:
            await store.close()

    async def close_all(self) -> None:
        for name in list(self._stores):
            await self.close(name)
