"""
Consumer — polls one topic and hands each due message to a Handler.

Each consumer owns two background loops on the same poll period:

  ┌──────────────┐  LPOP <topic>:list           ┌─────────────┐
  │ queue loop   │─────────────────────────────▶│             │
  └──────────────┘                              │  dispatch   │──▶ Handler
  ┌──────────────┐  MULTI                       │  (one task  │    (fire and
  │ delay loop   │    ZRANGEBYSCORE 0 now_ms    │  per msg)   │     forget)
  │              │    ZREMRANGEBYSCORE 0 now_ms │             │
  └──────────────┘  EXEC ──────────────────────▶└─────────────┘

Delivery is at-most-once: a message leaves the store before its handler
runs, and nothing is redelivered if the handler fails or the process dies.
Dispatch tasks are never awaited, so handler concurrency is unbounded; a
handler that needs backpressure has to queue internally.
"""
from __future__ import annotations

import asyncio
import time
import structlog
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from config.settings import QueueConfig
from topic_queue.errors import MessageDecodeError
from topic_queue.message import Message, list_key, zset_key
from topic_queue.store import StoreAdapter

logger = structlog.get_logger()

DEFAULT_RATE_LIMIT_PERIOD = 0.2  # seconds


# ──────────────────────────────────────────────────────────────
#  Handler
# ──────────────────────────────────────────────────────────────

class Handler(ABC):
    """Receives every message delivered on a topic."""

    @abstractmethod
    async def handle_message(self, message: Message) -> None:
        """Process one message. Raised exceptions are logged, never retried."""
        ...


class FunctionHandler(Handler):
    """Adapts a plain `async def fn(message)` to the Handler interface."""

    def __init__(self, fn: Callable[[Message], Awaitable[Any]]):
        self._fn = fn

    async def handle_message(self, message: Message) -> None:
        await self._fn(message)


HandlerLike = Union[Handler, Callable[[Message], Awaitable[Any]]]


# ──────────────────────────────────────────────────────────────
#  Options / State
# ──────────────────────────────────────────────────────────────

@dataclass
class ConsumerOptions:
    rate_limit_period: float = DEFAULT_RATE_LIMIT_PERIOD

    def __post_init__(self):
        if self.rate_limit_period <= 0:
            self.rate_limit_period = DEFAULT_RATE_LIMIT_PERIOD

    @classmethod
    def from_config(cls, config: QueueConfig) -> ConsumerOptions:
        return cls(rate_limit_period=config.rate_limit_period_ms / 1000)


class ConsumerState(str, Enum):
    IDLE = "idle"          # built, no handler yet
    RUNNING = "running"    # handler set, loops started
    STOPPED = "stopped"    # both loops observed cancellation


# ──────────────────────────────────────────────────────────────
#  Consumer
# ──────────────────────────────────────────────────────────────

class Consumer:
    """
    Topic-scoped polling consumer.

    Usage:
        stop = asyncio.Event()
        consumer = Consumer(store, "invoices", stop_event=stop)
        consumer.set_handler(InvoiceHandler())   # starts both loops
        ...
        stop.set()                               # or: await consumer.stop()
        await consumer.wait_closed()

    The stop event may be shared by several consumers; setting it stops all
    of them within one poll period.
    """

    def __init__(
        self,
        store: StoreAdapter,
        topic: str,
        *,
        stop_event: Optional[asyncio.Event] = None,
        options: Optional[ConsumerOptions] = None,
    ):
        self.store = store
        self.topic = topic
        self.options = options or ConsumerOptions()
        self._stop_event = stop_event or asyncio.Event()
        self._handler: Optional[Handler] = None
        self._loops: list[asyncio.Task] = []
        self._dispatched: set[asyncio.Task] = set()

    @property
    def handler(self) -> Optional[Handler]:
        return self._handler

    @property
    def stop_event(self) -> asyncio.Event:
        return self._stop_event

    @property
    def state(self) -> ConsumerState:
        if not self._loops:
            return ConsumerState.IDLE
        if all(task.done() for task in self._loops):
            return ConsumerState.STOPPED
        return ConsumerState.RUNNING

    def set_handler(self, handler: Optional[HandlerLike]) -> None:
        """
        Register the handler. The first call starts both poll loops; later
        calls only replace the handler. Needs a running event loop.

        With no handler (None) the loops keep ticking but leave the store alone.
        """
        if handler is not None and not isinstance(handler, Handler):
            handler = FunctionHandler(handler)
        self._handler = handler

        if not self._loops:
            self._loops = [
                asyncio.create_task(self._process_queue_msg(), name=list_key(self.topic)),
                asyncio.create_task(self._process_delay_queue_msg(), name=zset_key(self.topic)),
            ]
            logger.info("consumer_started",
                        topic=self.topic,
                        period_s=self.options.rate_limit_period)

    async def stop(self) -> None:
        """Signal cancellation and wait for both loops to exit."""
        self._stop_event.set()
        await self.wait_closed()

    async def wait_closed(self) -> None:
        """Wait for both loops to exit. In-flight handler tasks are not awaited."""
        if self._loops:
            await asyncio.wait(self._loops)

    # ── poll loops ────────────────────────────────────────────

    async def _tick(self) -> bool:
        """Wait one period. False once the stop event is observed."""
        try:
            await asyncio.wait_for(
                self._stop_event.wait(),
                timeout=self.options.rate_limit_period,
            )
        except asyncio.TimeoutError:
            return True
        return False

    async def _process_queue_msg(self) -> None:
        key = list_key(self.topic)
        try:
            while await self._tick():
                # first check handler
                handler = self._handler
                if handler is None:
                    continue

                try:
                    payload = await self.store.list_pop_head(key)
                except Exception as e:
                    logger.error("queue_pop_error", topic=self.topic, error=str(e))
                    continue

                if not payload:
                    continue
                self._dispatch(handler, payload)
        finally:
            logger.info("consumer_loop_stopped", topic=self.topic, loop="queue")

    async def _process_delay_queue_msg(self) -> None:
        key = zset_key(self.topic)
        try:
            while await self._tick():
                handler = self._handler
                if handler is None:
                    continue

                now_ms = int(time.time() * 1000)
                try:
                    due = await self.store.sorted_set_pop_by_score(key, 0, now_ms)
                except Exception as e:
                    logger.error("delayed_pop_error", topic=self.topic, error=str(e))
                    continue

                for payload, _score in due:
                    self._dispatch(handler, payload)
        finally:
            logger.info("consumer_loop_stopped", topic=self.topic, loop="delay")

    # ── dispatch ──────────────────────────────────────────────

    def _dispatch(self, handler: Handler, payload: bytes) -> None:
        try:
            msg = Message.decode(payload)
        except MessageDecodeError as e:
            # Already removed from the store; the message is gone.
            logger.error("message_decode_error",
                         topic=self.topic,
                         payload=payload[:256],
                         error=str(e))
            return
        except Exception as e:
            logger.error("message_dispatch_error",
                         topic=self.topic,
                         payload=payload[:256],
                         error=repr(e))
            return

        task = asyncio.create_task(self._handle(handler, msg))
        self._dispatched.add(task)
        task.add_done_callback(self._dispatched.discard)

    async def _handle(self, handler: Handler, msg: Message) -> None:
        logger.info("processing_message", topic=self.topic, message=str(msg))
        try:
            await handler.handle_message(msg)
        except Exception as e:
            logger.error("message_handler_error",
                         topic=self.topic,
                         message_id=msg.id,
                         error=str(e))
