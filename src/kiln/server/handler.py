"""ASGI handler — translates ASGI scope/messages to kiln types.

The only component that touches raw ASGI for HTTP requests. Builds a typed
``Request`` from the scope and hands it to a fresh ``RenderCoordinator``,
which owns the response from there on.
"""

import logging
import time
from collections.abc import Mapping

from kiln._internal.asgi import Receive, Scope, Send
from kiln.config import KilnConfig
from kiln.http.request import Request
from kiln.render.coordinator import RenderCallback, RenderCoordinator, RenderResult
from kiln.state.store import Reducer

logger = logging.getLogger("kiln.server")


async def handle_request(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    render: RenderCallback,
    config: KilnConfig,
    reducers: Mapping[str, Reducer] | None = None,
) -> RenderResult | None:
    """Process a single HTTP request through the render pipeline."""
    if scope["type"] != "http":
        return None

    request = Request.from_asgi(scope, receive)
    coordinator = RenderCoordinator(render, config=config, reducers=reducers)

    started = time.perf_counter()
    result = await coordinator.run(request, send)
    elapsed_ms = (time.perf_counter() - started) * 1000

    logger.info(
        "%s %s %s %s %.1fms",
        request.method,
        request.url,
        result.status if result.status is not None else "-",
        result.phase.value,
        elapsed_ms,
    )
    return result
