"""Non-destructive deep merge for state snapshots."""

from collections.abc import Mapping
from typing import Any


def deep_merge(base: Mapping[str, Any], *overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Merge *overrides* into a copy of *base*, left to right.

    Nested mappings merge key by key, so fields the override does not
    mention survive. Any other value (lists included) replaces the
    existing one wholesale. Neither input is modified; untouched nested
    values are shared with *base*, which is safe because snapshots are
    never mutated in place.
    """
    result = dict(base)
    for override in overrides:
        for key, value in override.items():
            current = result.get(key)
            if isinstance(current, Mapping) and isinstance(value, Mapping):
                result[key] = deep_merge(current, value)
            elif isinstance(value, Mapping):
                result[key] = deep_merge({}, value)
            else:
                result[key] = value
    return result
