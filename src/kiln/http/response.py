"""Complete, non-streamed responses.

Rendered pages stream through ``ResponseWriter``; a ``Response`` is only
used where the whole body is known up front: rejected requests and the
fallback document.
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Response:
    body: str | bytes = ""
    status: int = 200
    content_type: str = "text/html; charset=utf-8"
    headers: tuple[tuple[str, str], ...] = ()

    @property
    def body_bytes(self) -> bytes:
        return self.body.encode("utf-8") if isinstance(self.body, str) else self.body
