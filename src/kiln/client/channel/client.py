"""Channel client — state synchronization over one multiplexed connection.

One ``ChannelClient`` per session. The transport is opened lazily on the
first join or push and shared by every topic. A single reader task
routes inbound frames: replies resolve the request that is waiting on
their ``ref``; everything else goes to the topic's handlers in receipt
order.

Two events are bridged into the local store on every topic:

- ``action``   — the payload is dispatched to the store verbatim
- ``navigate`` — ``payload["path"]`` is pushed to the navigation service,
  unless its path and query args equal the store's current ``application``
  location

A successful join merges the server's reply into the local state (the
store's ``merge`` action); it never replaces state wholesale. Failed and
timed-out joins are logged and left alone: nothing is retried.
"""

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from kiln.client.channel.message import (
    ACTION,
    HEARTBEAT,
    NAVIGATE,
    PHOENIX_TOPIC,
    PHX_CLOSE,
    PHX_ERROR,
    PHX_JOIN,
    PHX_LEAVE,
    ChannelMessage,
)
from kiln.client.channel.topic import ChannelTopic, Reply, TopicState
from kiln.client.channel.transport import Transport, WebSocketTransport
from kiln.client.navigation import Location, NavigationService
from kiln.errors import ChannelError
from kiln.state.application import APPLICATION
from kiln.state.store import StateStore, merge_action

logger = logging.getLogger("kiln.channel")

type TransportFactory = Callable[[], Awaitable[Transport]]


class ChannelClient:
    """Joins topics and keeps *store* in sync with server pushes.

    Usage::

        client = ChannelClient(store, url="wss://example.com/socket/websocket?vsn=2.0.0")
        reply = await client.join("ticker:AAPL", {"counter": 1})
        await client.push("ticker:AAPL", "predictions", {"id": "..."})
        await client.close()

    Pass ``transport_factory`` to supply the connection yourself (tests
    use an in-memory transport).
    """

    def __init__(
        self,
        store: StateStore,
        *,
        url: str | None = None,
        transport_factory: TransportFactory | None = None,
        navigation: NavigationService | None = None,
        join_timeout: float = 10.0,
        heartbeat_interval: float | None = 30.0,
    ) -> None:
        self.store = store
        self.navigation = navigation
        self.url = url
        self.join_timeout = join_timeout
        self.heartbeat_interval = heartbeat_interval
        self.topics: dict[str, ChannelTopic] = {}
        self._transport_factory = transport_factory
        self._transport: Transport | None = None
        self._connect_lock = asyncio.Lock()
        self._pending: dict[str, asyncio.Future[ChannelMessage]] = {}
        self._refs = itertools.count(1)
        self._reader: asyncio.Task[None] | None = None
        self._heartbeat: asyncio.Task[None] | None = None

    @property
    def connected(self) -> bool:
        return self._transport is not None

    def _make_ref(self) -> str:
        return str(next(self._refs))

    # -- Connection --

    async def connect(self) -> None:
        """Open the transport if it is not open yet."""
        async with self._connect_lock:
            if self._transport is not None:
                return
            if self._transport_factory is not None:
                self._transport = await self._transport_factory()
            elif self.url is not None:
                self._transport = await WebSocketTransport.connect(self.url)
            else:
                raise ChannelError("no channel url or transport_factory configured")
            self._reader = asyncio.create_task(self._read_loop())
            if self.heartbeat_interval:
                self._heartbeat = asyncio.create_task(self._heartbeat_loop(self.heartbeat_interval))

    async def close(self) -> None:
        """Leave every topic and close the connection."""
        if self._transport is not None:
            for name in list(self.topics):
                await self.leave(name)

        tasks = [t for t in (self._heartbeat, self._reader) if t is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._heartbeat = self._reader = None

        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.close()
            logger.info("Channel connection closed")

    async def _send(self, message: ChannelMessage) -> None:
        if self._transport is None:
            raise ChannelError("not connected")
        await self._transport.send(message.encode())

    async def _request(self, message: ChannelMessage, timeout: float | None) -> ChannelMessage:
        """Send *message* and wait for the ``phx_reply`` carrying its ref."""
        assert message.ref is not None
        if self._reader is not None and self._reader.done():
            raise ChannelError("connection closed")
        future: asyncio.Future[ChannelMessage] = asyncio.get_running_loop().create_future()
        self._pending[message.ref] = future
        try:
            await self._send(message)
            return await asyncio.wait_for(future, timeout)
        finally:
            self._pending.pop(message.ref, None)

    # -- Topics --

    def topic(self, name: str, payload: dict[str, Any] | None = None) -> ChannelTopic:
        """Get or create the topic *name*, with the store bridges bound."""
        topic = self.topics.get(name)
        if topic is None:
            topic = ChannelTopic(self, name, payload)
            topic.on(ACTION, self._on_action)
            topic.on(NAVIGATE, self._on_navigate)
            self.topics[name] = topic
        elif payload is not None:
            topic.payload = dict(payload)
        return topic

    async def join(self, name: str, payload: dict[str, Any] | None = None) -> Reply:
        """Join *name*, sending *payload* (e.g. a snapshot of known state).

        ``ok`` merges the reply into the store. ``error`` and ``timeout``
        are logged; the topic stays unjoined.
        """
        topic = self.topic(name, payload)
        if topic.state is TopicState.JOINED:
            return Reply("ok")

        await self.connect()
        ref = self._make_ref()
        topic.join_ref = ref
        topic.state = TopicState.JOINING
        message = ChannelMessage(topic=name, event=PHX_JOIN, payload=topic.payload, ref=ref, join_ref=ref)

        try:
            answer = await self._request(message, self.join_timeout)
        except TimeoutError:
            topic.state = TopicState.ERRORED
            logger.warning("Join %s timed out after %.1fs", name, self.join_timeout)
            return Reply("timeout")

        response = answer.reply_response
        if answer.reply_status == "ok":
            topic.state = TopicState.JOINED
            if response:
                self.store.dispatch(merge_action(response))
            logger.info("Joined %s", name)
            return Reply("ok", response)

        topic.state = TopicState.ERRORED
        logger.warning("Join %s rejected: %r", name, response)
        return Reply("error", response)

    async def leave(self, name: str) -> None:
        """Leave *name* and forget the topic."""
        topic = self.topics.pop(name, None)
        if topic is None:
            return
        if topic.state in (TopicState.JOINED, TopicState.JOINING) and self._transport is not None:
            topic.state = TopicState.LEAVING
            message = ChannelMessage(
                topic=name, event=PHX_LEAVE, ref=self._make_ref(), join_ref=topic.join_ref
            )
            try:
                await self._request(message, self.join_timeout)
            except TimeoutError:
                logger.debug("No reply to leave of %s", name)
            except ChannelError as exc:
                logger.debug("Leave of %s not acknowledged: %s", name, exc)
        topic.state = TopicState.CLOSED
        topic.join_ref = None
        logger.info("Left %s", name)

    async def push(
        self,
        name: str,
        event: str,
        payload: dict[str, Any] | None = None,
        *,
        reply: bool = False,
        timeout: float | None = None,
    ) -> Reply | None:
        """Send *event* on a joined topic.

        One-way by default. With ``reply=True`` waits for the server's
        ``phx_reply`` and returns it (``timeout`` defaults to the join
        timeout).
        """
        topic = self.topics.get(name)
        if topic is None or topic.state is not TopicState.JOINED:
            raise ChannelError(f"cannot push {event!r}: topic {name!r} is not joined")

        message = ChannelMessage(
            topic=name,
            event=event,
            payload=dict(payload or {}),
            ref=self._make_ref(),
            join_ref=topic.join_ref,
        )
        if not reply:
            await self._send(message)
            return None
        try:
            answer = await self._request(message, self.join_timeout if timeout is None else timeout)
        except TimeoutError:
            return Reply("timeout")
        return Reply("ok" if answer.reply_status == "ok" else "error", answer.reply_response)

    # -- Store bridges --

    def _on_action(self, payload: dict[str, Any]) -> None:
        self.store.dispatch(payload)

    def _on_navigate(self, payload: dict[str, Any]) -> None:
        path = payload.get("path")
        if not isinstance(path, str):
            logger.warning("navigate without a path: %r", payload)
            return
        target = Location.parse(path)
        application = self.store.get(APPLICATION) or {}
        if target.path == application.get("path") and target.query_args == application.get("query_args", {}):
            logger.debug("navigate to current location %s ignored", path)
            return
        if self.navigation is None:
            logger.warning("navigate to %s dropped: no navigation service", path)
            return
        self.navigation.push(path)

    # -- Reader --

    async def _read_loop(self) -> None:
        assert self._transport is not None
        transport = self._transport
        try:
            while True:
                raw = await transport.recv()
                try:
                    message = ChannelMessage.decode(raw)
                except ChannelError as exc:
                    logger.warning("Dropping malformed frame: %s", exc)
                    continue
                await self._route(message)
        except ChannelError as exc:
            logger.info("Channel reader stopped: %s", exc)
        finally:
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(ChannelError("connection closed"))
            for topic in self.topics.values():
                if topic.state is not TopicState.CLOSED:
                    topic.state = TopicState.ERRORED

    async def _route(self, message: ChannelMessage) -> None:
        if message.is_reply:
            future = self._pending.get(message.ref) if message.ref is not None else None
            if future is not None and not future.done():
                future.set_result(message)
            elif message.topic != PHOENIX_TOPIC:
                logger.debug("Unmatched reply on %s (ref %s)", message.topic, message.ref)
            return

        topic = self.topics.get(message.topic)
        if topic is None:
            logger.debug("Message for unknown topic %s: %s", message.topic, message.event)
            return
        if message.join_ref is not None and message.join_ref != topic.join_ref:
            logger.debug("Stale %s on %s (join_ref %s)", message.event, message.topic, message.join_ref)
            return

        if message.event == PHX_CLOSE:
            topic.state = TopicState.CLOSED
            logger.info("Server closed %s", topic.name)
        elif message.event == PHX_ERROR:
            topic.state = TopicState.ERRORED
            logger.warning("Server reported an error on %s", topic.name)
        else:
            await topic.deliver(message)

    async def _heartbeat_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self._send(ChannelMessage(topic=PHOENIX_TOPIC, event=HEARTBEAT, ref=self._make_ref()))
            except ChannelError as exc:
                logger.warning("Heartbeat failed: %s", exc)
                return
