"""The ``application`` domain: path, response result, and client size.

Pure functions only. Action builders return plain dicts so they can travel
over the channel unchanged (a server ``action`` event carries exactly
what ``set_path()`` etc. build here).
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import IntEnum
from http import HTTPStatus
from typing import Any, Literal

APPLICATION = "application"

SET_PATH = "application/setPath"
SET_CLIENT_SIZE = "application/setClientSize"
ROUTE_RESULT = "application/routeResult"


class ClientSize(IntEnum):
    """UI size class. Lower values are wider screens."""

    XL = 0
    DESKTOP = 1
    LAPTOP = 2
    TABLET = 3
    MOBILE = 4

    @classmethod
    def from_width(cls, width: int) -> ClientSize:
        """Classify a viewport width using the theme breakpoints."""
        for size, minimum in _BREAKPOINTS:
            if width >= minimum:
                return size
        return cls.MOBILE


_BREAKPOINTS = (
    (ClientSize.XL, 1500),
    (ClientSize.DESKTOP, 1280),
    (ClientSize.LAPTOP, 1080),
    (ClientSize.TABLET, 768),
    (ClientSize.MOBILE, 0),
)


def matches_client_size(
    state: Mapping[str, Any],
    qualifier: Literal["up", "down", "is"],
    size: ClientSize,
) -> bool:
    """Compare the snapshot's client size against *size*.

    ``up`` — current screen is *size* or wider; ``down`` — *size* or
    narrower; ``is`` — exactly *size*.
    """
    current = ClientSize(state[APPLICATION]["client_size"])
    if qualifier == "up":
        return size >= current
    if qualifier == "down":
        return size <= current
    return size == current


def default_application() -> dict[str, Any]:
    return {
        "path": "/",
        "can_go_back": False,
        "previous_location": None,
        "query_args": {},
        "path_args": {},
        "args": {},
        "client_size": int(ClientSize.DESKTOP),
        "locale": "en-US",
        "response": {"status": 200, "status_text": "OK", "error_info": None},
    }


def default_state() -> dict[str, Any]:
    """Built-in defaults for a fresh snapshot."""
    return {APPLICATION: default_application()}


# -- Action builders --


def set_path(
    path: str,
    *,
    query_args: Mapping[str, Any] | None = None,
    path_args: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    return {
        "type": SET_PATH,
        "payload": {
            "path": path,
            "query_args": dict(query_args or {}),
            "path_args": dict(path_args or {}),
        },
    }


def set_client_size(size: ClientSize) -> dict[str, Any]:
    return {"type": SET_CLIENT_SIZE, "payload": int(size)}


def route_result(
    status: int,
    *,
    status_text: str | None = None,
    error_info: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    if status_text is None:
        status_text = _phrase(status)
    return {
        "type": ROUTE_RESULT,
        "payload": {
            "status": status,
            "status_text": status_text,
            "error_info": dict(error_info) if error_info is not None else None,
        },
    }


def _phrase(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ""


# -- Reducer --


def application_reducer(state: Mapping[str, Any] | None, action: Mapping[str, Any]) -> Any:
    if state is None:
        state = default_application()

    match action.get("type"):
        case "application/setPath":
            payload = action["payload"]
            query_args = dict(payload.get("query_args") or {})
            path_args = dict(payload.get("path_args") or {})
            changed = payload["path"] != state["path"]
            return {
                **state,
                "path": payload["path"],
                "previous_location": state["path"] if changed else state["previous_location"],
                "can_go_back": state["can_go_back"] or changed,
                "query_args": query_args,
                "path_args": path_args,
                "args": {**query_args, **path_args},
                "response": {"status": 200, "status_text": "OK", "error_info": None},
            }

        case "application/setClientSize":
            size = int(ClientSize(action["payload"]))
            if size == state["client_size"]:
                return state
            return {**state, "client_size": size}

        case "application/routeResult":
            payload = action["payload"]
            return {
                **state,
                "response": {
                    **(state.get("response") or {}),
                    "status": payload.get("status"),
                    "status_text": payload.get("status_text"),
                    "error_info": payload.get("error_info"),
                },
            }

        case _:
            return state


# -- Snapshot-level transitions --


def set_error_result(
    snapshot: Mapping[str, Any],
    status: int,
    message: str,
    stack: str | None = None,
) -> dict[str, Any]:
    """Return a new snapshot whose response carries an error result.

    Pure: *snapshot* is left untouched.
    """
    action = route_result(status, error_info={"message": message, "stack": stack})
    return {**snapshot, APPLICATION: application_reducer(snapshot.get(APPLICATION), action)}


def response_status(snapshot: Mapping[str, Any]) -> int:
    """HTTP status recorded in the snapshot (200 when unset)."""
    response = (snapshot.get(APPLICATION) or {}).get("response") or {}
    status = response.get("status")
    return status if isinstance(status, int) else 200


def error_info(snapshot: Mapping[str, Any]) -> dict[str, Any] | None:
    response = (snapshot.get(APPLICATION) or {}).get("response") or {}
    return response.get("error_info")
