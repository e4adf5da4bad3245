"""Application state — domain-keyed snapshots, reducers, and hydration.

Snapshots are plain JSON-ready dicts. They are never mutated in place:
every transition builds a new snapshot and the store swaps it in.
"""

from kiln.state.application import ClientSize, default_state, set_error_result
from kiln.state.hydration import extract_hydration_state, hydration_script
from kiln.state.merge import deep_merge
from kiln.state.store import Action, Reducer, StateStore

__all__ = [
    "Action",
    "ClientSize",
    "Reducer",
    "StateStore",
    "deep_merge",
    "default_state",
    "extract_hydration_state",
    "hydration_script",
    "set_error_result",
]
