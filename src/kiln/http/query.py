"""Query string parameters.

The application state carries them as ``query_args``: a single value as a
string, a repeated key as a list, the way a browser-side parser reports
``?a=1&a=2&b=3``.
"""

from collections.abc import Iterator, Mapping
from urllib.parse import parse_qsl


class QueryParams(Mapping[str, str]):
    """Parsed query string. ``params[key]`` is the first value."""

    __slots__ = ("_grouped", "_raw")

    def __init__(self, query_string: bytes = b"") -> None:
        self._raw = query_string
        grouped: dict[str, list[str]] = {}
        for key, value in parse_qsl(query_string.decode("latin-1"), keep_blank_values=True):
            grouped.setdefault(key, []).append(value)
        self._grouped = grouped

    @property
    def raw(self) -> bytes:
        return self._raw

    def __getitem__(self, key: str) -> str:
        return self._grouped[key][0]

    def __iter__(self) -> Iterator[str]:
        return iter(self._grouped)

    def __len__(self) -> int:
        return len(self._grouped)

    def __repr__(self) -> str:
        return f"QueryParams({self._raw!r})"

    def get_list(self, key: str) -> list[str]:
        return list(self._grouped.get(key, ()))

    def to_args(self) -> dict[str, str | list[str]]:
        """``{"a": ["1", "2"], "b": "3"}`` for ``?a=1&a=2&b=3``."""
        return {key: values[0] if len(values) == 1 else list(values) for key, values in self._grouped.items()}
