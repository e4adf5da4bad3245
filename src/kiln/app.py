"""kiln application class.

Mutable during setup (reducers, lifecycle hooks).
Locked once it starts serving.
"""

import logging
import threading
from collections.abc import AsyncIterator, Callable, Mapping
from typing import Any

from kida import Environment

from kiln._internal.asgi import Receive, Scope, Send
from kiln._internal.invoke import invoke
from kiln.config import KilnConfig
from kiln.errors import ConfigurationError
from kiln.render.coordinator import RenderCallback
from kiln.render.templates import TemplateRenderer, create_environment
from kiln.server.handler import handle_request
from kiln.state.store import DEFAULT_REDUCERS, Reducer

logger = logging.getLogger("kiln.server")


class App:
    """The kiln application.

    Wraps one render callback. Every HTTP request gets a fresh
    ``RenderCoordinator`` and a fresh ``StateStore`` built from the
    registered reducers::

        app = App(render, config=KilnConfig(render_timeout=5.0))

        @app.reducer("options")
        def options(state, action):
            ...

    Setup (decorators, ``add_reducer``) is import-time work. The first
    request, lifespan startup or ``run()`` validates the config under a
    lock and locks setup from then on.
    """

    __slots__ = (
        "_freeze_lock",
        "_frozen",
        "_reducers",
        "_render",
        "_shutdown_hooks",
        "_startup_hooks",
        "config",
    )

    def __init__(
        self,
        render: RenderCallback,
        config: KilnConfig | None = None,
        *,
        reducers: Mapping[str, Reducer] | None = None,
    ) -> None:
        self.config: KilnConfig = config or KilnConfig()
        self._render = render
        self._reducers: dict[str, Reducer] = dict(DEFAULT_REDUCERS)
        if reducers:
            self._reducers.update(reducers)
        self._startup_hooks: list[Callable[..., Any]] = []
        self._shutdown_hooks: list[Callable[..., Any]] = []
        self._frozen: bool = False
        self._freeze_lock: threading.Lock = threading.Lock()

    @classmethod
    def from_templates(
        cls,
        pages: Mapping[str, str],
        config: KilnConfig | None = None,
        *,
        env: Environment | None = None,
        reducers: Mapping[str, Reducer] | None = None,
        **renderer_options: Any,
    ) -> App:
        """Build an app whose render callback is a ``TemplateRenderer``.

        Usage::

            app = App.from_templates({"/": "home.html"}, KilnConfig(template_dir="pages"))
        """
        config = config or KilnConfig()
        env = env or create_environment(config)
        return cls(TemplateRenderer(env, pages, **renderer_options), config, reducers=reducers)

    @property
    def render(self) -> RenderCallback:
        return self._render

    @property
    def reducers(self) -> Mapping[str, Reducer]:
        return dict(self._reducers)

    # -- Setup --

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = "Cannot modify the app after it has started serving requests."
            raise RuntimeError(msg)

    def add_reducer(self, domain: str, reducer: Reducer) -> None:
        """Register *reducer* for the *domain* slice of every request store."""
        self._check_not_frozen()
        self._reducers[domain] = reducer

    def reducer(self, domain: str) -> Callable[[Reducer], Reducer]:
        """Register a domain reducer via decorator."""

        def decorator(func: Reducer) -> Reducer:
            self.add_reducer(domain, func)
            return func

        return decorator

    def on_startup(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Decorator: run *func* (sync or async) when the server starts."""
        self._check_not_frozen()
        self._startup_hooks.append(func)
        return func

    def on_shutdown(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Decorator: run *func* (sync or async) when the server stops."""
        self._check_not_frozen()
        self._shutdown_hooks.append(func)
        return func

    # -- Server --

    def run(self, host: str | None = None, port: int | None = None, *, app_path: str | None = None) -> None:
        """Validate the app and start serving with pounce.

        Reload is enabled when ``config.debug`` is set.
        """
        self._ensure_frozen()

        from kiln.server.dev import run_server

        run_server(self, host, port, app_path=app_path)

    # -- ASGI --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI entry: lifespan is handled here, HTTP goes to the render pipeline."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(scope, receive, send)
            return

        self._ensure_frozen()

        if scope["type"] != "http":
            logger.debug("Ignoring unsupported scope type %r", scope["type"])
            return

        await handle_request(
            scope,
            receive,
            send,
            render=self._render,
            config=self.config,
            reducers=self._reducers,
        )

    async def run_hooks(self, phase: str) -> None:
        """Run the ``"startup"`` or ``"shutdown"`` hooks in registration order."""
        hooks = self._startup_hooks if phase == "startup" else self._shutdown_hooks
        for hook in hooks:
            await invoke(hook)

    async def _handle_lifespan(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Speak the ASGI lifespan protocol for pounce.

        Validation happens here, so a bad config fails startup instead of
        the first render.
        """
        try:
            self._ensure_frozen()
        except ConfigurationError as exc:
            await receive()
            await send({"type": "lifespan.startup.failed", "message": str(exc)})
            return

        async for event in _lifespan_events(receive):
            phase = event.removeprefix("lifespan.")
            try:
                await self.run_hooks(phase)
            except Exception as exc:
                if phase != "startup":
                    raise
                logger.exception("Startup hook failed")
                await send({"type": "lifespan.startup.failed", "message": str(exc)})
                return
            await send({"type": f"{event}.complete"})
            if phase == "shutdown":
                return

    # -- Internal --

    def _ensure_frozen(self) -> None:
        """Validate and lock setup once, whichever thread gets here first."""
        if self._frozen:
            return
        with self._freeze_lock:
            if not self._frozen:
                self._validate()
                self._frozen = True
                logger.debug("App ready with reducers %s", sorted(self._reducers))

    def _validate(self) -> None:
        self.config.validate()
        if not callable(self._render):
            msg = f"render must be callable, got {type(self._render).__name__}"
            raise ConfigurationError(msg)


async def _lifespan_events(receive: Receive) -> AsyncIterator[str]:
    """Yield lifespan event types until shutdown is requested."""
    while True:
        event = (await receive())["type"]
        if event in ("lifespan.startup", "lifespan.shutdown"):
            yield event
        if event == "lifespan.shutdown":
            return
