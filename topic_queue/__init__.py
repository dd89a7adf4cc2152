"""
topic_queue — a small Redis-backed message queue.

- Producers PUBLISH bytes to a topic, now (Redis list) or after a delay
  (Redis sorted set scored by fire time)
- A Consumer polls one topic with two loops and hands each message to a
  Handler as a fire-and-forget task
- Delivery is at-most-once: no acks, no retries, no dead-letter queue
"""
from topic_queue.consumer import (
    Consumer, ConsumerOptions, ConsumerState, FunctionHandler, Handler,
)
from topic_queue.errors import (
    InvalidDelayError, MessageDecodeError, QueueError, StoreError,
)
from topic_queue.message import Message, list_key, new_message, zset_key
from topic_queue.producer import Producer
from topic_queue.provider import StoreProvider
from topic_queue.store import InMemoryStore, RedisStore, StoreAdapter

__all__ = [
    "Consumer",
    "ConsumerOptions",
    "ConsumerState",
    "FunctionHandler",
    "Handler",
    "InMemoryStore",
    "InvalidDelayError",
    "Message",
    "MessageDecodeError",
    "Producer",
    "QueueError",
    "RedisStore",
    "StoreAdapter",
    "StoreError",
    "StoreProvider",
    "list_key",
    "new_message",
    "zset_key",
]
