"""Client navigation — an explicit, in-memory history.

``NavigationService`` keeps a stack of locations with a cursor, like a
browser's session history. Listeners are called synchronously with the
new location and the action (``push``, ``replace``, ``pop``). Bind it to a
store with ``bind_store()`` so every navigation dispatches
``application/setPath``.
"""

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal
from urllib.parse import urlsplit

from kiln.http.query import QueryParams
from kiln.state.application import set_path
from kiln.state.store import StateStore

logger = logging.getLogger("kiln.navigation")

type NavigationAction = Literal["push", "replace", "pop"]
type NavigationListener = Callable[[Location, NavigationAction], None]

_keys = itertools.count(1)


@dataclass(frozen=True, slots=True)
class Location:
    """One history entry."""

    path: str
    query: str = ""
    state: Any = None
    key: str = field(default_factory=lambda: format(next(_keys), "x"))

    @classmethod
    def parse(cls, url: str, state: Any = None) -> Location:
        parts = urlsplit(url)
        return cls(path=parts.path or "/", query=parts.query, state=state)

    @property
    def url(self) -> str:
        return f"{self.path}?{self.query}" if self.query else self.path

    @property
    def query_args(self) -> dict[str, str | list[str]]:
        return QueryParams(self.query.encode("latin-1")).to_args()


class NavigationService:
    """Session history with listeners.

    Usage::

        nav = NavigationService("/")
        unbind = nav.bind_store(store)
        nav.push("/options?symbol=AAPL")
        nav.back()
    """

    __slots__ = ("_entries", "_index", "_listeners")

    def __init__(self, initial: str = "/") -> None:
        self._entries: list[Location] = [Location.parse(initial)]
        self._index = 0
        self._listeners: list[NavigationListener] = []

    @property
    def location(self) -> Location:
        return self._entries[self._index]

    @property
    def can_go_back(self) -> bool:
        return self._index > 0

    @property
    def can_go_forward(self) -> bool:
        return self._index < len(self._entries) - 1

    def __len__(self) -> int:
        return len(self._entries)

    # -- Listeners --

    def subscribe(self, listener: NavigationListener) -> Callable[[], None]:
        """Call *listener* after every navigation. Returns an unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: NavigationListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, action: NavigationAction) -> None:
        location = self.location
        logger.debug("%s %s", action, location.url)
        for listener in tuple(self._listeners):
            listener(location, action)

    # -- Navigation --

    def push(self, url: str, state: Any = None) -> Location:
        """Add a new entry after the current one, dropping forward entries."""
        del self._entries[self._index + 1 :]
        self._entries.append(Location.parse(url, state))
        self._index += 1
        self._notify("push")
        return self.location

    def replace(self, url: str, state: Any = None) -> Location:
        self._entries[self._index] = Location.parse(url, state)
        self._notify("replace")
        return self.location

    def go(self, delta: int) -> Location:
        """Move the cursor by *delta* entries, clamped to the history bounds."""
        index = max(0, min(len(self._entries) - 1, self._index + delta))
        if index != self._index:
            self._index = index
            self._notify("pop")
        return self.location

    def back(self) -> Location:
        return self.go(-1)

    def forward(self) -> Location:
        return self.go(1)

    # -- Store binding --

    def bind_store(self, store: StateStore) -> Callable[[], None]:
        """Dispatch ``application/setPath`` to *store* on every navigation."""

        def _sync(location: Location, action: NavigationAction) -> None:
            store.dispatch(set_path(location.path, query_args=location.query_args))

        return self.subscribe(_sync)
