"""Shared test fixtures for topic_queue."""
import asyncio
import time

import pytest

from topic_queue.consumer import ConsumerOptions, Handler
from topic_queue.message import Message
from topic_queue.producer import Producer
from topic_queue.store import InMemoryStore


POLL = 0.02  # seconds; keeps consumer tests fast


class RecordingHandler(Handler):
    """Collects delivered messages with their arrival time."""

    def __init__(self, fail: bool = False):
        self.messages: list[Message] = []
        self.received_at: list[float] = []
        self.fail = fail

    async def handle_message(self, message: Message) -> None:
        self.messages.append(message)
        self.received_at.append(time.time())
        if self.fail:
            raise RuntimeError(f"handler failed for {message.id}")

    @property
    def bodies(self) -> list[bytes]:
        return [m.body for m in self.messages]


async def wait_for_count(handler: RecordingHandler, count: int, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while len(handler.messages) < count:
        if time.monotonic() > deadline:
            raise AssertionError(
                f"expected {count} messages, got {len(handler.messages)}"
            )
        await asyncio.sleep(POLL / 2)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def producer(store) -> Producer:
    return Producer(store)


@pytest.fixture
def fast_options() -> ConsumerOptions:
    return ConsumerOptions(rate_limit_period=POLL)


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()
