"""Call a ``def`` or ``async def`` the same way.

Render callbacks, lifespan hooks and channel event handlers may be either.
"""

import inspect
from typing import Any


async def invoke(handler: Any, *args: Any, **kwargs: Any) -> Any:
    """Call *handler*; await the result when it is awaitable."""
    result = handler(*args, **kwargs)
    if inspect.isawaitable(result):
        return await result
    return result
