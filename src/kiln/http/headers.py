"""Request headers, case-insensitive and read-only."""

from collections.abc import Iterable, Iterator, Mapping
from typing import Any


class Headers(Mapping[str, str]):
    """Header values indexed by lower-cased name.

    ``headers[name]`` is the first value; ``get_all(name)`` keeps repeats
    in arrival order. Names and values are decoded as latin-1, as ASGI
    hands them over.
    """

    __slots__ = ("_index",)

    def __init__(self, raw: Iterable[tuple[bytes, bytes]] = ()) -> None:
        index: dict[str, list[str]] = {}
        for name, value in raw:
            index.setdefault(name.decode("latin-1").lower(), []).append(value.decode("latin-1"))
        self._index = index

    @classmethod
    def from_scope(cls, scope: Mapping[str, Any]) -> Headers:
        return cls(scope.get("headers") or ())

    def __getitem__(self, name: str) -> str:
        return self._index[name.lower()][0]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._index

    def __iter__(self) -> Iterator[str]:
        return iter(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def __repr__(self) -> str:
        return f"Headers({self._index!r})"

    def get_all(self, name: str) -> list[str]:
        return list(self._index.get(name.lower(), ()))
