"""Render request parsing and initial state.

A render is requested with a non-GET HTTP request whose JSON body is::

    {"assigns": {"state": {<partial snapshot>}}}

``assigns.state`` is the caller's override snapshot. It is deep-merged over
the built-in defaults and the fields derived from the request URL.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from kiln.errors import RenderError
from kiln.http.query import QueryParams
from kiln.http.request import Request
from kiln.state.application import APPLICATION, default_state
from kiln.state.merge import deep_merge

BODYLESS_METHODS = frozenset({"GET", "HEAD"})


@dataclass(frozen=True, slots=True)
class RenderRequest:
    """A validated render request."""

    method: str
    path: str
    query: QueryParams
    body: bytes
    assigns: dict[str, Any]

    @property
    def url(self) -> str:
        qs = self.query.raw
        if qs:
            return f"{self.path}?{qs.decode('latin-1')}"
        return self.path

    @property
    def override_state(self) -> dict[str, Any]:
        return self.assigns.get("state") or {}

    def initial_state(self) -> dict[str, Any]:
        """Defaults, then request-derived fields, then the caller's override."""
        query_args = self.query.to_args()
        derived = {
            APPLICATION: {
                "path": self.path,
                "query_args": query_args,
                "args": dict(query_args),
            }
        }
        return deep_merge(default_state(), derived, self.override_state)

    @classmethod
    async def from_request(cls, request: Request, *, max_body: int | None = None) -> RenderRequest:
        """Read and validate *request*.

        Raises ``RenderError`` of kind ``VALIDATION`` when the method does
        not carry a body, or the body is missing, too large, not JSON, or
        not shaped like ``{"assigns": {"state": {...}}}``.
        """
        if request.method in BODYLESS_METHODS:
            msg = f"{request.method} cannot carry render assigns; send them in a JSON body"
            raise RenderError.validation(msg)

        try:
            raw = await request.body(max_size=max_body)
        except ValueError as exc:
            raise RenderError.validation(str(exc)) from exc
        if not raw.strip():
            raise RenderError.validation("missing JSON body")

        try:
            data = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise RenderError.validation(f"body is not valid JSON: {exc}") from exc

        if not isinstance(data, dict):
            raise RenderError.validation("body must be a JSON object")
        assigns = data.get("assigns")
        if not isinstance(assigns, dict):
            raise RenderError.validation("body.assigns must be an object")
        state = assigns.get("state")
        if state is not None and not isinstance(state, dict):
            raise RenderError.validation("body.assigns.state must be an object")

        return cls(
            method=request.method,
            path=request.path,
            query=request.query,
            body=raw,
            assigns=assigns,
        )
