"""kiln — render once on the server, hydrate, then stay in sync.

A page is rendered by an opaque render callback, streamed to the browser
with a bootstrap payload injected right before ``</head>``, and hydrated on
the client from the embedded state snapshot. After hydration a persistent
channel connection keeps the client's state synchronized with the server.

Basic usage::

    from kiln import App

    async def render(store, hooks):
        state = store.snapshot()
        yield b"<html><head><title>kiln</title></head><body>"
        hooks.shell_ready()
        yield f"<p>{state['application']['path']}</p>".encode()
        yield b"</body></html>"

    app = App(render)
    app.run()

Client side::

    from kiln.client import SessionContext

    session = SessionContext.from_document(html, url="wss://example/socket")
    await session.channels.join("user:42", {"counter": 1})
"""

__version__ = "0.1.0-dev"
__all__ = [
    "App",
    "ConfigurationError",
    "ErrorKind",
    "InjectionSpec",
    "KilnConfig",
    "KilnError",
    "RenderCoordinator",
    "RenderError",
    "RenderHooks",
    "StateStore",
    "StreamInjector",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import kiln`` fast while providing a clean top-level API.
    """
    if name == "App":
        from kiln.app import App

        return App

    if name == "KilnConfig":
        from kiln.config import KilnConfig

        return KilnConfig

    if name in ("ConfigurationError", "ErrorKind", "KilnError", "RenderError"):
        from kiln import errors as _errors

        return getattr(_errors, name)

    if name in ("InjectionSpec", "StreamInjector"):
        from kiln.render import injector as _injector

        return getattr(_injector, name)

    if name in ("RenderCoordinator", "RenderHooks"):
        from kiln.render import coordinator as _coordinator

        return getattr(_coordinator, name)

    if name == "StateStore":
        from kiln.state.store import StateStore

        return StateStore

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
