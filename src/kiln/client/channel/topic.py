"""Channel topics — one named subscription on a shared connection."""

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Literal

from kiln._internal.invoke import invoke
from kiln.client.channel.message import ChannelMessage

if TYPE_CHECKING:
    from kiln.client.channel.client import ChannelClient

logger = logging.getLogger("kiln.channel")

type EventHandler = Callable[[dict[str, Any]], Any]


class TopicState(StrEnum):
    CLOSED = "closed"
    JOINING = "joining"
    JOINED = "joined"
    LEAVING = "leaving"
    ERRORED = "errored"


@dataclass(frozen=True, slots=True)
class Reply:
    """Outcome of a join or of a push that awaited its reply."""

    status: Literal["ok", "error", "timeout"]
    response: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"


class ChannelTopic:
    """A topic on a ``ChannelClient``.

    Holds the join payload, the event-name → handlers table, and the
    lifecycle state. Handlers receive the message payload and may be
    ``def`` or ``async def``; they run in receipt order.
    """

    __slots__ = ("_bindings", "_client", "_refs", "join_ref", "name", "payload", "state")

    def __init__(self, client: ChannelClient, name: str, payload: dict[str, Any] | None = None) -> None:
        self._client = client
        self.name = name
        self.payload: dict[str, Any] = dict(payload or {})
        self.state = TopicState.CLOSED
        self.join_ref: str | None = None
        self._bindings: dict[str, list[tuple[int, EventHandler]]] = {}
        self._refs = itertools.count(1)

    def __repr__(self) -> str:
        return f"ChannelTopic({self.name!r}, state={self.state.value})"

    @property
    def joined(self) -> bool:
        return self.state is TopicState.JOINED

    def on(self, event: str, handler: EventHandler) -> int:
        """Bind *handler* to *event*. Returns a ref for ``off()``."""
        ref = next(self._refs)
        self._bindings.setdefault(event, []).append((ref, handler))
        return ref

    def off(self, event: str, ref: int | None = None) -> None:
        """Unbind one handler (by ref) or every handler for *event*."""
        if ref is None:
            self._bindings.pop(event, None)
            return
        bindings = self._bindings.get(event)
        if bindings:
            bindings[:] = [(r, h) for r, h in bindings if r != ref]

    def handlers(self, event: str) -> list[EventHandler]:
        return [handler for _, handler in self._bindings.get(event, ())]

    async def deliver(self, message: ChannelMessage) -> None:
        """Run the handlers bound to the message's event, in bind order."""
        for handler in self.handlers(message.event):
            try:
                await invoke(handler, message.payload)
            except Exception:
                logger.exception("Handler for %s %r failed", self.name, message.event)

    async def join(self, payload: dict[str, Any] | None = None) -> Reply:
        if payload is not None:
            self.payload = dict(payload)
        return await self._client.join(self.name, self.payload)

    async def leave(self) -> None:
        await self._client.leave(self.name)

    async def push(
        self,
        event: str,
        payload: dict[str, Any] | None = None,
        *,
        reply: bool = False,
        timeout: float | None = None,
    ) -> Reply | None:
        return await self._client.push(self.name, event, payload, reply=reply, timeout=timeout)
