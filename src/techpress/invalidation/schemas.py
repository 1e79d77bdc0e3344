"""Invalidation event schema.

Wire format (queue payload), JSON object:

    {"action": "invalidate", "keys": ["blog:42", "comments:42"]}

`event_id`, `timestamp` and `source` are optional metadata added by this
publisher; other publishers may omit them and unknown fields are ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

import orjson


class InvalidationAction(str, Enum):
    """Recognized invalidation actions."""

    INVALIDATE = "invalidate"
    # Tag used by older publishers, same meaning
    INVALIDATE_CACHE = "invalidateCache"


RECOGNIZED_ACTIONS = frozenset(action.value for action in InvalidationAction)


class InvalidationDecodeError(ValueError):
    """Payload is not a well-formed invalidation event."""


@dataclass(frozen=True)
class InvalidationEvent:
    """Announcement that the given key patterns are stale."""

    keys: tuple[str, ...]
    action: str = InvalidationAction.INVALIDATE.value
    event_id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    source: str | None = None

    @property
    def is_invalidation(self) -> bool:
        """True if consumers should act on this event; other actions are no-ops."""
        return self.action in RECOGNIZED_ACTIONS

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "action": self.action,
            "keys": list(self.keys),
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.source:
            data["source"] = self.source
        return data

    def to_bytes(self) -> bytes:
        """Serialize to JSON bytes."""
        return orjson.dumps(self.to_dict())

    @classmethod
    def from_bytes(cls, data: bytes) -> "InvalidationEvent":
        """Deserialize from JSON bytes.

        Raises:
            InvalidationDecodeError: payload is not JSON, not an object, or a
                recognized action carries no list of string keys.
        """
        try:
            parsed = orjson.loads(data)
        except orjson.JSONDecodeError as e:
            raise InvalidationDecodeError(f"Invalid JSON payload: {e}") from e

        if not isinstance(parsed, dict):
            raise InvalidationDecodeError("Payload must be a JSON object")

        action = parsed.get("action")
        if not isinstance(action, str):
            raise InvalidationDecodeError("Field 'action' must be a string")

        raw_keys = parsed.get("keys", [])
        if action in RECOGNIZED_ACTIONS:
            if not isinstance(raw_keys, list) or not all(isinstance(k, str) for k in raw_keys):
                raise InvalidationDecodeError("Field 'keys' must be a list of strings")
            keys = tuple(raw_keys)
        else:
            # Unknown actions are acknowledged without looking at their body
            keys = ()

        kwargs: dict[str, Any] = {"keys": keys, "action": action}
        event_id = parsed.get("event_id")
        if isinstance(event_id, str):
            kwargs["event_id"] = event_id
        timestamp = parsed.get("timestamp")
        if isinstance(timestamp, str):
            try:
                kwargs["timestamp"] = datetime.fromisoformat(timestamp)
            except ValueError:
                pass  # metadata only
        source = parsed.get("source")
        if isinstance(source, str):
            kwargs["source"] = source

        return cls(**kwargs)
