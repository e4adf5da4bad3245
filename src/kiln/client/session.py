"""Client session — everything one page load owns.

``SessionContext`` is created once per page load from the server-rendered
document. It owns the store (hydrated from the embedded snapshot), the
navigation service bound to that store, and the channel client. ``close()``
detaches listeners and leaves every topic.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from kiln.client.channel.client import ChannelClient, TransportFactory
from kiln.client.navigation import NavigationService
from kiln.config import KilnConfig
from kiln.state.application import APPLICATION, default_state
from kiln.state.hydration import extract_hydration_state
from kiln.state.merge import deep_merge
from kiln.state.store import Reducer, StateStore

logger = logging.getLogger("kiln.channel")


def hydrate_store(
    snapshot: Mapping[str, Any] | None,
    *,
    reducers: Mapping[str, Reducer] | None = None,
) -> StateStore:
    """A client store seeded with the defaults merged with *snapshot*."""
    return StateStore(deep_merge(default_state(), snapshot or {}), reducers=reducers)


class SessionContext:
    """Store, navigation, and channel for one page load.

    Usage::

        async with SessionContext.from_document(html, url=socket_url) as session:
            await session.channels.join("user:42")
            session.navigation.push("/options")
    """

    __slots__ = ("_unbind", "channels", "navigation", "store")

    def __init__(
        self,
        store: StateStore,
        channels: ChannelClient,
        *,
        navigation: NavigationService | None = None,
    ) -> None:
        self.store = store
        self.channels = channels
        if navigation is None:
            application = store.get(APPLICATION) or {}
            navigation = NavigationService(application.get("path") or "/")
        self.navigation = navigation
        channels.navigation = navigation
        self._unbind: list[Callable[[], None]] = [navigation.bind_store(store)]

    @classmethod
    def from_document(
        cls,
        document: str | bytes,
        *,
        url: str | None = None,
        transport_factory: TransportFactory | None = None,
        config: KilnConfig | None = None,
        reducers: Mapping[str, Reducer] | None = None,
    ) -> SessionContext:
        """Hydrate a session from a server-rendered document."""
        config = config or KilnConfig()
        snapshot = extract_hydration_state(document, config.state_global)
        if snapshot is None:
            logger.warning("Document carries no %s payload; starting from defaults", config.state_global)
        store = hydrate_store(snapshot, reducers=reducers)
        channels = ChannelClient(
            store,
            url=url or config.channel_url,
            transport_factory=transport_factory,
            join_timeout=config.join_timeout,
            heartbeat_interval=config.heartbeat_interval,
        )
        return cls(store, channels)

    def track(self, unsubscribe: Callable[[], None]) -> None:
        """Run *unsubscribe* when the session closes."""
        self._unbind.append(unsubscribe)

    async def close(self) -> None:
        """Detach every listener, leave every topic, close the connection."""
        unbind, self._unbind = self._unbind, []
        for unsubscribe in reversed(unbind):
            unsubscribe()
        await self.channels.close()

    async def __aenter__(self) -> SessionContext:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
