"""Topic slots — one live topic at a time, switched in a fixed order.

A page that follows "the current thing" (``ticker:AAPL`` then
``ticker:MSFT``) holds a ``TopicSlot``. ``switch()`` always runs::

    unbind old listeners → leave old topic → join new topic → rebind listeners

and switches on the same slot are serialized by a lock, so a fast second
switch never interleaves with the first.
"""

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from kiln.client.channel.client import ChannelClient
from kiln.client.channel.topic import ChannelTopic, EventHandler, Reply

logger = logging.getLogger("kiln.channel")


class TopicSlot:
    """Holds at most one joined topic of *client* plus its listeners.

    Usage::

        slot = TopicSlot(client, {"quote": on_quote})
        await slot.switch("ticker:AAPL")
        await slot.switch("ticker:MSFT")   # leaves AAPL first
        await slot.clear()
    """

    __slots__ = ("_bindings", "_client", "_lock", "_refs", "topic")

    def __init__(self, client: ChannelClient, bindings: Mapping[str, EventHandler] | None = None) -> None:
        self._client = client
        self._bindings = dict(bindings or {})
        self._lock = asyncio.Lock()
        self._refs: list[tuple[str, int]] = []
        self.topic: ChannelTopic | None = None

    @property
    def name(self) -> str | None:
        return self.topic.name if self.topic is not None else None

    async def switch(self, name: str | None, payload: dict[str, Any] | None = None) -> Reply | None:
        """Move the slot to topic *name* (``None`` just empties it).

        Returns the join reply, or ``None`` when nothing was joined.
        Listeners are bound only when the join succeeds.
        """
        async with self._lock:
            current = self.topic
            if current is not None and current.name == name and current.joined:
                return None

            if current is not None:
                for event, ref in self._refs:
                    current.off(event, ref)
                self._refs.clear()
                await self._client.leave(current.name)
                self.topic = None

            if name is None:
                return None

            reply = await self._client.join(name, payload)
            if not reply.ok:
                logger.warning("Slot could not join %s (%s)", name, reply.status)
                return reply

            topic = self._client.topic(name)
            self._refs = [(event, topic.on(event, handler)) for event, handler in self._bindings.items()]
            self.topic = topic
            return reply

    async def clear(self) -> None:
        await self.switch(None)
