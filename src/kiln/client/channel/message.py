"""Channel wire format — Phoenix v2 JSON array frames.

Every frame is a five-element JSON array::

    [join_ref, ref, topic, event, payload]

``join_ref`` ties a message to one join of a topic (replies and pushes
from an earlier join carry a stale value). ``ref`` correlates a request
with its ``phx_reply``. ``payload`` is always a JSON object.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from kiln.errors import ChannelError

PHOENIX_TOPIC = "phoenix"

PHX_JOIN = "phx_join"
PHX_LEAVE = "phx_leave"
PHX_REPLY = "phx_reply"
PHX_CLOSE = "phx_close"
PHX_ERROR = "phx_error"
HEARTBEAT = "heartbeat"

ACTION = "action"
NAVIGATE = "navigate"


@dataclass(frozen=True, slots=True)
class ChannelMessage:
    """One frame on the channel connection."""

    topic: str
    event: str
    payload: dict[str, Any] = field(default_factory=dict)
    ref: str | None = None
    join_ref: str | None = None

    @property
    def is_reply(self) -> bool:
        return self.event == PHX_REPLY

    @property
    def reply_status(self) -> str | None:
        """``ok`` / ``error`` for a ``phx_reply``; ``None`` otherwise."""
        if not self.is_reply:
            return None
        status = self.payload.get("status")
        return status if isinstance(status, str) else None

    @property
    def reply_response(self) -> dict[str, Any]:
        response = self.payload.get("response") if self.is_reply else None
        return response if isinstance(response, dict) else {}

    def encode(self) -> str:
        return json.dumps(
            [self.join_ref, self.ref, self.topic, self.event, self.payload],
            separators=(",", ":"),
        )

    @classmethod
    def decode(cls, raw: str | bytes) -> ChannelMessage:
        """Parse a frame. Raises ``ChannelError`` for anything malformed."""
        try:
            data = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ChannelError(f"frame is not valid JSON: {exc}") from exc

        if not isinstance(data, list) or len(data) != 5:
            raise ChannelError("frame must be a 5-element array")
        join_ref, ref, topic, event, payload = data
        if not isinstance(topic, str) or not isinstance(event, str):
            raise ChannelError("frame topic and event must be strings")
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise ChannelError(f"frame payload must be an object, got {type(payload).__name__}")
        return cls(
            topic=topic,
            event=event,
            payload=payload,
            ref=None if ref is None else str(ref),
            join_ref=None if join_ref is None else str(join_ref),
        )


def reply(message: ChannelMessage, status: str, response: dict[str, Any] | None = None) -> ChannelMessage:
    """The ``phx_reply`` a server sends for *message*."""
    return ChannelMessage(
        topic=message.topic,
        event=PHX_REPLY,
        payload={"status": status, "response": response or {}},
        ref=message.ref,
        join_ref=message.join_ref,
    )
