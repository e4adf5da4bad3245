"""Incoming requests as the render pipeline sees them.

Method, path, query and headers are fixed when the request arrives. The
body is pulled from ASGI ``receive`` on first use and kept, so later
reads return the same bytes.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from kiln._internal.asgi import Receive
from kiln.http.headers import Headers
from kiln.http.query import QueryParams


def _too_large(limit: int) -> ValueError:
    return ValueError(f"request body exceeds {limit} bytes")


@dataclass(frozen=True, slots=True)
class Request:
    method: str
    path: str
    query: QueryParams
    headers: Headers
    _receive: Receive = field(repr=False, compare=False)
    _body: list[bytes] = field(default_factory=list, repr=False, compare=False)

    @classmethod
    def from_asgi(cls, scope: Mapping[str, Any], receive: Receive) -> Request:
        return cls(
            method=scope["method"].upper(),
            path=scope.get("path") or "/",
            query=QueryParams(scope.get("query_string", b"")),
            headers=Headers.from_scope(scope),
            _receive=receive,
        )

    @property
    def url(self) -> str:
        """Path plus query string, as requested."""
        if self.query.raw:
            return f"{self.path}?{self.query.raw.decode('latin-1')}"
        return self.path

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")

    @property
    def declared_length(self) -> int | None:
        """``Content-Length`` when present and numeric."""
        value = self.headers.get("content-length", "")
        return int(value) if value.isdigit() else None

    async def body(self, *, max_size: int | None = None) -> bytes:
        """Read the whole body. Raises ``ValueError`` past *max_size* bytes.

        A declared ``Content-Length`` over the limit is refused before
        anything is read.
        """
        if self._body:
            return self._body[0]

        declared = self.declared_length
        if max_size is not None and declared is not None and declared > max_size:
            raise _too_large(max_size)

        buffer = bytearray()
        while True:
            message = await self._receive()
            if message["type"] == "http.disconnect":
                break
            buffer += message.get("body", b"")
            if max_size is not None and len(buffer) > max_size:
                raise _too_large(max_size)
            if not message.get("more_body", False):
                break

        body = bytes(buffer)
        self._body.append(body)
        return body

    async def json(self) -> Any:
        return json.loads(await self.body())
