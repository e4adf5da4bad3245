"""Shared fixtures: ASGI send recorders and request builders."""

import json
from typing import Any

import pytest

from kiln.http.request import Request


class Recorder:
    """ASGI ``send`` that keeps every message."""

    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []

    async def __call__(self, message: dict[str, Any]) -> None:
        self.messages.append(message)

    @property
    def starts(self) -> list[dict[str, Any]]:
        return [m for m in self.messages if m["type"] == "http.response.start"]

    @property
    def status(self) -> int | None:
        return self.starts[0]["status"] if self.starts else None

    @property
    def body(self) -> bytes:
        return b"".join(m.get("body", b"") for m in self.messages if m["type"] == "http.response.body")

    @property
    def text(self) -> str:
        return self.body.decode("utf-8")

    @property
    def closed(self) -> bool:
        bodies = [m for m in self.messages if m["type"] == "http.response.body"]
        return bool(bodies) and not bodies[-1].get("more_body", False)


def build_request(
    method: str = "POST",
    path: str = "/",
    *,
    body: bytes | None = None,
    state: dict[str, Any] | None = None,
    query: bytes = b"",
) -> Request:
    if body is None:
        assigns: dict[str, Any] = {} if state is None else {"state": state}
        body = json.dumps({"assigns": assigns}).encode()
    sent = False

    async def receive() -> dict[str, Any]:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return {"type": "http.disconnect"}

    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "query_string": query,
        "headers": [(b"content-type", b"application/json")],
    }
    return Request.from_asgi(scope, receive)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def make_request():
    return build_request
