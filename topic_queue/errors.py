"""
Queue errors.

  QueueError            — root of everything raised by topic_queue
  InvalidDelayError     — publish_delay_msg() called with delay <= 0
  StoreError            — the backing store failed (connection, protocol, …)
  MessageDecodeError    — a stored payload is not a valid message envelope

Handler exceptions are not wrapped: the consumer logs whatever the handler
raises and moves on.
"""
from __future__ import annotations


class QueueError(Exception):
    """Base class for queue errors."""
    pass


class InvalidDelayError(QueueError, ValueError):
    """Raised when a delayed publish is requested with a non-positive delay."""
    pass


class StoreError(QueueError):
    """Raised when the backing store rejects or fails an operation."""
    pass


class MessageDecodeError(QueueError):
    """Raised when a payload cannot be decoded into a Message."""

    def __init__(self, message: str, payload: bytes = b""):
        super().__init__(message)
        self.payload = payload
