"""
Producer — writes messages into a topic's list (now) or sorted set (later).

One store write per call, nothing buffered. Store failures surface to the
caller as StoreError exactly as the store raised them; there is no retry.
"""
from __future__ import annotations

import math
import time
import structlog
from datetime import timedelta
from typing import Union

from topic_queue.errors import InvalidDelayError
from topic_queue.message import Message, list_key, new_message, zset_key
from topic_queue.store import StoreAdapter

logger = structlog.get_logger()

Delay = Union[timedelta, float, int]


def _delay_seconds(delay: Delay) -> float:
    if isinstance(delay, timedelta):
        return delay.total_seconds()
    return float(delay)


class Producer:
    """
    Publishes messages to topics. Holds nothing but the store handle, so one
    instance can be shared by any number of concurrent callers.

    Usage:
        producer = Producer(store)
        await producer.publish("invoices", b"...")
        await producer.publish_delay_msg("invoices", b"...", timedelta(minutes=5))
    """

    def __init__(self, store: StoreAdapter):
        self.store = store

    async def publish(self, topic: str, body: bytes) -> Message:
        """Queue a message for immediate delivery."""
        msg = new_message("", body)
        await self.store.list_push_tail(list_key(topic), msg.encode())
        logger.debug("message_published", topic=topic, message_id=msg.id)
        return msg

    async def publish_delay_msg(self, topic: str, body: bytes, delay: Delay) -> Message:
        """
        Queue a message that becomes deliverable `delay` from now.

        `delay` is a timedelta or a number of seconds. The sorted-set score is
        the fire time in milliseconds; the envelope's delayTime keeps seconds.
        """
        seconds = _delay_seconds(delay)
        if math.isnan(seconds) or seconds <= 0:
            raise InvalidDelayError("delay need great than zero")

        fire_at = time.time() + seconds
        if not math.isfinite(fire_at * 1000):
            raise InvalidDelayError(f"delay out of range: {seconds}")
        msg = new_message("", body, delay_time=int(fire_at))
        score = float(int(fire_at * 1000))
        await self.store.sorted_set_add(zset_key(topic), score, msg.encode())
        logger.debug("delayed_message_published",
                      topic=topic,
                      message_id=msg.id,
                      delay_time=msg.delay_time)
        return msg
