"""In-process state store.

One store per request on the server and one per page load on the client.
Mutation happens only through ``dispatch()``: every registered domain
reducer sees every action (combine-reducers semantics) and returns either
the same slice object (unchanged) or a new one. Subscribers are registered
per slice and called synchronously after the new snapshot is in place.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from kiln.state.application import APPLICATION, application_reducer
from kiln.state.merge import deep_merge

logger = logging.getLogger("kiln.state")

type Action = Mapping[str, Any]
type Reducer = Callable[[Any, Action], Any]
type Listener = Callable[[Any], None]

MERGE = "merge"
"""Built-in action type: deep-merge ``payload`` into the whole snapshot."""


def merge_action(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Build a ``merge`` action for *payload*."""
    return {"type": MERGE, "payload": dict(payload)}


DEFAULT_REDUCERS: Mapping[str, Reducer] = {APPLICATION: application_reducer}


class StateStore:
    """Holds the current snapshot and applies reducer transitions.

    Usage::

        store = StateStore(initial=default_state())
        store.dispatch(set_path("/options"))
        store.snapshot()["application"]["path"]   # "/options"

    Slices without a registered reducer are opaque: they are carried
    along, replaced by ``merge`` actions, and otherwise untouched.
    """

    __slots__ = ("_listeners", "_reducers", "_state")

    def __init__(
        self,
        initial: Mapping[str, Any] | None = None,
        *,
        reducers: Mapping[str, Reducer] | None = None,
    ) -> None:
        self._reducers: dict[str, Reducer] = dict(DEFAULT_REDUCERS if reducers is None else reducers)
        self._listeners: dict[str, list[Listener]] = {}
        state = dict(initial or {})
        # Let each reducer fill in its default slice, like a store init action
        for domain, reducer in self._reducers.items():
            state[domain] = reducer(state.get(domain), {"type": "@@kiln/init"})
        self._state: dict[str, Any] = state

    def snapshot(self) -> dict[str, Any]:
        """The current snapshot. Treat as read-only; deep-copy to keep it."""
        return self._state

    def get(self, domain: str, default: Any = None) -> Any:
        return self._state.get(domain, default)

    def dispatch(self, action: Action) -> dict[str, Any]:
        """Apply *action* and return the resulting snapshot."""
        action_type = action.get("type") if isinstance(action, Mapping) else None
        if not isinstance(action_type, str):
            msg = f"actions must be mappings with a string 'type', got {action!r}"
            raise TypeError(msg)

        previous = self._state
        if action_type == MERGE:
            payload = action.get("payload") or {}
            if not isinstance(payload, Mapping):
                msg = f"merge payload must be a mapping, got {type(payload).__name__}"
                raise TypeError(msg)
            current = deep_merge(previous, payload)
        else:
            current = previous
            for domain, reducer in self._reducers.items():
                before = previous.get(domain)
                after = reducer(before, action)
                if after is not before:
                    if current is previous:
                        current = dict(previous)
                    current[domain] = after

        if current is previous:
            return previous

        self._state = current
        changed = [
            key
            for key in current.keys() | previous.keys()
            if current.get(key) is not previous.get(key)
        ]
        logger.debug("dispatch %s changed %s", action_type, sorted(changed))
        for key in changed:
            for listener in tuple(self._listeners.get(key, ())):
                listener(current.get(key))
        return current

    def subscribe(self, domain: str, listener: Listener) -> Callable[[], None]:
        """Call *listener* with the new slice whenever *domain* changes.

        Returns a function that removes the subscription.
        """
        listeners = self._listeners.setdefault(domain, [])
        listeners.append(listener)

        def unsubscribe() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe
