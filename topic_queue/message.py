"""
Message — the envelope carried through both delivery modes.

Wire format (one JSON object per list element / sorted-set member):
  {
      "id":        unique message identifier,
      "body":      base64 of the raw payload bytes,
      "timestamp": creation time, epoch seconds,
      "delayTime": epoch seconds at which the message becomes deliverable,
  }

Key layout per topic:
  <topic>:list    — immediate messages (RPUSH by producers, LPOP by consumers)
  <topic>:zset    — delayed messages, scored by fire time in epoch milliseconds
"""
from __future__ import annotations

import base64
import binascii
import json
import time
import uuid
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from topic_queue.errors import MessageDecodeError

LIST_SUFFIX = ":list"
ZSET_SUFFIX = ":zset"


def list_key(topic: str) -> str:
    return topic + LIST_SUFFIX


def zset_key(topic: str) -> str:
    return topic + ZSET_SUFFIX


class Message(BaseModel):
    """A queued message. Frozen once built; the body is never interpreted."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    body: bytes = b""
    timestamp: int
    delay_time: int = Field(alias="delayTime")

    def __str__(self) -> str:
        body = self.body.decode("utf-8", errors="replace")
        return f"ID:{self.id} body:[{body}] t:{self.timestamp} dt:{self.delay_time}"

    def to_dict(self) -> dict[str, Any]:
        d = self.model_dump(by_alias=True)
        d["body"] = base64.b64encode(self.body).decode("ascii")
        return d

    def encode(self) -> bytes:
        return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        data = dict(data)  # copy
        body = data.get("body")
        if isinstance(body, str):
            data["body"] = base64.b64decode(body, validate=True)
        elif body is None:
            data["body"] = b""
        return cls.model_validate(data)

    @classmethod
    def decode(cls, payload: Union[bytes, str]) -> Message:
        """Parse a stored payload. Raises MessageDecodeError on any malformed input."""
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        try:
            data = json.loads(payload)
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
            return cls.from_dict(data)
        except (ValueError, TypeError, RecursionError, binascii.Error, ValidationError) as e:
            raise MessageDecodeError(str(e), payload=payload) from e


def new_message(id: str = "", body: bytes = b"", *, delay_time: Optional[int] = None) -> Message:
    """Build a message stamped with the current time; an empty id gets a fresh UUID."""
    if not id:
        id = str(uuid.uuid4())
    now = int(time.time())
    return Message(
        id=id,
        body=body,
        timestamp=now,
        delay_time=now if delay_time is None else delay_time,
    )
