"""Page patterns for ``TemplateRenderer``.

Patterns are application paths with ``{name}`` segments, optionally typed::

    "/options"                 static
    "/ticker/{symbol}"         one segment, any text
    "/orders/{id:int}"         digits, converted to int
    "/docs/{rest:path}"        everything that is left, slashes included

Static segments win over parameters, parameters over a trailing ``path``
capture. The table is built once and only read afterwards.
"""

import re
from dataclasses import dataclass, field
from typing import Any

# converter name -> (segment regex, python type)
CONVERTERS: dict[str, tuple[str, type]] = {
    "str": (r"[^/]+", str),
    "int": (r"\d+", int),
    "float": (r"\d+(?:\.\d+)?", float),
    "path": (r".+", str),
}


@dataclass(frozen=True, slots=True)
class Segment:
    text: str
    param: str | None = None
    kind: str = "str"


@dataclass(frozen=True, slots=True)
class PageMatch:
    """The template picked for a path and the values captured on the way."""

    template: str
    pattern: str
    path_args: dict[str, Any] = field(default_factory=dict)


def split_pattern(pattern: str) -> list[Segment]:
    """``"/ticker/{symbol}"`` -> ``[Segment("ticker"), Segment("{symbol}", "symbol")]``.

    Raises ``ValueError`` for an unknown converter or a ``path`` capture
    that is not last.
    """
    parts = [part for part in pattern.strip("/").split("/") if part]
    segments: list[Segment] = []
    for position, part in enumerate(parts):
        if not (part.startswith("{") and part.endswith("}")):
            segments.append(Segment(part))
            continue
        name, _, kind = part[1:-1].partition(":")
        kind = kind or "str"
        if kind not in CONVERTERS:
            msg = f"Unknown converter {kind!r} in page pattern {pattern!r}"
            raise ValueError(msg)
        if kind == "path" and position != len(parts) - 1:
            msg = f"{{{name}:path}} must be the last segment of {pattern!r}"
            raise ValueError(msg)
        segments.append(Segment(part, name, kind))
    return segments


class _Node:
    __slots__ = ("capture", "page", "param", "static")

    def __init__(self) -> None:
        self.static: dict[str, _Node] = {}
        self.param: tuple[Segment, re.Pattern[str], _Node] | None = None
        self.capture: tuple[str, tuple[str, str]] | None = None
        self.page: tuple[str, str] | None = None


class PageTable:
    """Maps page patterns to template names.

    Usage::

        table = PageTable({"/": "home.html", "/ticker/{symbol}": "ticker.html"})
        table.match("/ticker/AAPL")
        # PageMatch(template="ticker.html", pattern="/ticker/{symbol}", path_args={"symbol": "AAPL"})
    """

    __slots__ = ("_root", "patterns")

    def __init__(self, pages: dict[str, str]) -> None:
        self._root = _Node()
        self.patterns = dict(pages)
        for pattern, template in self.patterns.items():
            self._add(pattern, template)

    def _add(self, pattern: str, template: str) -> None:
        node = self._root
        for segment in split_pattern(pattern):
            if segment.kind == "path" and segment.param is not None:
                node.capture = (segment.param, (template, pattern))
                return
            if segment.param is None:
                node = node.static.setdefault(segment.text, _Node())
                continue
            if node.param is None:
                regex = re.compile(f"^{CONVERTERS[segment.kind][0]}$")
                node.param = (segment, regex, _Node())
            elif node.param[0].param != segment.param or node.param[0].kind != segment.kind:
                msg = f"{pattern!r} conflicts with an existing parameter {node.param[0].text!r}"
                raise ValueError(msg)
            node = node.param[2]
        node.page = (template, pattern)

    def match(self, path: str) -> PageMatch | None:
        """Find the page for *path*, or ``None``."""
        parts = [part for part in path.strip("/").split("/") if part]
        found = self._walk(self._root, parts, 0, {})
        if found is None:
            return None
        (template, pattern), raw = found
        args: dict[str, Any] = {}
        for segment in split_pattern(pattern):
            if segment.param is not None:
                args[segment.param] = CONVERTERS[segment.kind][1](raw[segment.param])
        return PageMatch(template, pattern, args)

    def _walk(
        self,
        node: _Node,
        parts: list[str],
        index: int,
        captured: dict[str, str],
    ) -> tuple[tuple[str, str], dict[str, str]] | None:
        if index == len(parts):
            return (node.page, captured) if node.page is not None else None

        part = parts[index]
        child = node.static.get(part)
        if child is not None:
            found = self._walk(child, parts, index + 1, captured)
            if found is not None:
                return found

        if node.param is not None:
            segment, regex, next_node = node.param
            if regex.match(part):
                found = self._walk(next_node, parts, index + 1, {**captured, segment.param: part})
                if found is not None:
                    return found

        if node.capture is not None:
            name, page = node.capture
            return page, {**captured, name: "/".join(parts[index:])}
        return None
