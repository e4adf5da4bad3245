"""ASGI response sending — translates kiln responses to ASGI messages.

``send_response`` emits a complete, non-streamed body. ``ResponseWriter``
drives a chunked stream and guarantees that ``http.response.start`` (and
with it the HTTP status) is sent at most once per request.
"""

import logging

from kiln._internal.asgi import Send
from kiln.http.response import Response

logger = logging.getLogger("kiln.server")


def _body_allowed(status: int) -> bool:
    """Whether an HTTP status code permits a response body."""
    # RFC: 1xx, 204, and 304 responses do not include a message body.
    return not (100 <= status < 200 or status in {204, 304})


def _raw_headers(content_type: str, headers: tuple[tuple[str, str], ...]) -> list[tuple[bytes, bytes]]:
    raw: list[tuple[bytes, bytes]] = [(b"content-type", content_type.encode("latin-1"))]
    for name, value in headers:
        raw.append((name.lower().encode("latin-1"), value.encode("latin-1")))
    return raw


async def send_response(response: Response, send: Send) -> None:
    """Translate a kiln Response into ASGI send() calls."""
    raw_headers = _raw_headers(response.content_type, response.headers)
    body = response.body_bytes if _body_allowed(response.status) else b""
    raw_headers.append((b"content-length", str(len(body)).encode("latin-1")))

    await send(
        {
            "type": "http.response.start",
            "status": response.status,
            "headers": raw_headers,
        }
    )
    await send(
        {
            "type": "http.response.body",
            "body": body,
        }
    )


class ResponseWriter:
    """Single-use ASGI writer for one response.

    ``start()`` writes the status line and headers and returns ``False``
    (without sending anything) if a start was already written. ``write()``
    sends body chunks with ``more_body=True``; ``finish()`` closes the body
    exactly once. ``complete()`` sends a whole non-streamed ``Response``.
    """

    __slots__ = ("_finished", "_send", "_status", "bytes_sent")

    def __init__(self, send: Send) -> None:
        self._send = send
        self._status: int | None = None
        self._finished = False
        self.bytes_sent = 0

    @property
    def started(self) -> bool:
        return self._status is not None

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def status(self) -> int | None:
        return self._status

    async def start(
        self,
        status: int,
        *,
        content_type: str = "text/html; charset=utf-8",
        headers: tuple[tuple[str, str], ...] = (),
    ) -> bool:
        """Send response headers for a chunked body. At most once."""
        if self._status is not None:
            logger.debug("Ignoring second status write (%d after %d)", status, self._status)
            return False
        self._status = status
        # Chunked transfer encoding, so no content-length
        raw_headers = _raw_headers(content_type, headers)
        raw_headers.append((b"transfer-encoding", b"chunked"))
        await self._send(
            {
                "type": "http.response.start",
                "status": status,
                "headers": raw_headers,
            }
        )
        return True

    async def write(self, chunk: bytes) -> None:
        if not chunk or self._finished:
            return
        if self._status is None:
            raise RuntimeError("write() before start()")
        self.bytes_sent += len(chunk)
        await self._send(
            {
                "type": "http.response.body",
                "body": chunk,
                "more_body": True,
            }
        )

    async def finish(self) -> None:
        if self._finished or self._status is None:
            return
        self._finished = True
        await self._send(
            {
                "type": "http.response.body",
                "body": b"",
                "more_body": False,
            }
        )

    async def complete(self, response: Response) -> bool:
        """Send a whole non-streamed response, unless a status was already written."""
        if self._status is not None:
            logger.debug("Ignoring complete response (%d after %d)", response.status, self._status)
            return False
        self._status = response.status
        self._finished = True
        await send_response(response, self._send)
        return True
