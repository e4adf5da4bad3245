"""Streaming head injection.

Inserts bootstrap markup immediately before an anchor token (``</head>``
by default) in a byte stream that is otherwise passed through untouched.
Unlike a whole-body ``str.replace``, the injector never holds the full
document: it keeps a small tail window so an anchor split across chunk
boundaries (``...</he`` | ``ad>...``) is still found.

Pipeline::

    renderer ──chunks──▶ StreamInjector.feed() ──bytes──▶ ResponseWriter
                                  │
                          close() flushes the tail

Guarantees:

- at most one injection, before the first occurrence of the anchor
- every other byte is emitted unchanged and in order
- at most ``window`` bytes are held back at any time
- no anchor → output identical to input (logged at debug, not an error)
- empty injection content → pure passthrough, nothing is buffered
"""

import html
import logging
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass

logger = logging.getLogger("kiln.render")

DEFAULT_ANCHOR = b"</head>"


@dataclass(frozen=True, slots=True)
class InjectionSpec:
    """What to inject and where.

    ``fragments`` are raw markup, emitted in order. ``modules`` are
    external bootstrap script URLs, emitted after the fragments as
    ``<script type="module">`` tags.
    """

    fragments: tuple[str | bytes, ...] = ()
    anchor: bytes = DEFAULT_ANCHOR
    modules: tuple[str, ...] = ()

    def render(self) -> bytes:
        """The exact bytes inserted before the anchor."""
        parts = [f.encode("utf-8") if isinstance(f, str) else f for f in self.fragments]
        parts.extend(
            f'<script type="module" src="{html.escape(src, quote=True)}"></script>'.encode()
            for src in self.modules
        )
        return b"".join(parts)

    @property
    def is_empty(self) -> bool:
        return not self.render()


class StreamInjector:
    """Synchronous byte transform that injects once before the anchor.

    Feed chunks in order with ``feed()``; each call returns the bytes that
    are safe to emit now. Call ``close()`` at end of stream to flush the
    held-back tail.
    """

    __slots__ = ("_anchor", "_closed", "_content", "_tail", "_window", "injected")

    def __init__(self, spec: InjectionSpec, *, window: int | None = None) -> None:
        if not spec.anchor:
            raise ValueError("anchor must not be empty")
        if window is None:
            window = len(spec.anchor) + 1
        if window <= len(spec.anchor):
            msg = f"window ({window}) must be greater than the anchor length ({len(spec.anchor)})"
            raise ValueError(msg)
        self._anchor = spec.anchor
        self._content = spec.render()
        self._window = window
        self._tail = b""
        self._closed = False
        self.injected = False

    @property
    def passthrough(self) -> bool:
        """True once no more searching is needed (nothing to inject, or done)."""
        return self.injected or not self._content

    @property
    def buffered(self) -> int:
        """Bytes currently held back."""
        return len(self._tail)

    def feed(self, chunk: bytes) -> bytes:
        """Accept the next chunk; return the bytes ready to emit."""
        if self._closed:
            raise RuntimeError("feed() after close()")
        if self.passthrough:
            return bytes(chunk)

        buffer = self._tail + chunk
        index = buffer.find(self._anchor)
        if index >= 0:
            self.injected = True
            self._tail = b""
            logger.debug("Injected %d bytes before %r", len(self._content), self._anchor)
            return buffer[:index] + self._content + buffer[index:]

        if len(buffer) > self._window:
            self._tail = buffer[-self._window :]
            return buffer[: -self._window]

        self._tail = buffer
        return b""

    def close(self) -> bytes:
        """End of stream: return the remaining tail verbatim."""
        if self._closed:
            return b""
        self._closed = True
        tail, self._tail = self._tail, b""
        if self._content and not self.injected:
            logger.debug("Anchor %r never appeared; injection skipped", self._anchor)
        return tail


async def inject_stream(
    chunks: AsyncIterable[bytes],
    spec: InjectionSpec,
    *,
    window: int | None = None,
) -> AsyncIterator[bytes]:
    """Async adapter: yield *chunks* with *spec* injected.

    Empty outputs (bytes still held in the tail window) are not yielded.
    """
    injector = StreamInjector(spec, window=window)
    async for chunk in chunks:
        out = injector.feed(chunk)
        if out:
            yield out
    tail = injector.close()
    if tail:
        yield tail
