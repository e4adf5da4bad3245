"""Kida-backed render callback.

``TemplateRenderer`` maps application paths to kida templates and streams
the rendered page through kida's ``render_stream()``. It is a ready-made
``render(store, hooks)`` callback for ``App``::

    env = create_environment(config)
    render = TemplateRenderer(env, pages={"/": "home.html", "/ticker/{symbol}": "ticker.html"})
    app = App(render, config=config)

Pipeline::

    snapshot ──▶ pick template ──▶ resolve context (anyio) ──▶ render_stream()
                     │                                              │
       error_info set → error template              first chunk → hooks.shell_ready()
       pattern match  → path_args dispatched to the store
       unknown path   → RenderError(NOT_FOUND)
"""

import inspect
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator, Mapping
from typing import Any

import anyio
from kida import ChoiceLoader, Environment, FileSystemLoader, PackageLoader

from kiln.config import KilnConfig
from kiln.errors import RenderError
from kiln.render.coordinator import RenderHooks
from kiln.render.routes import PageMatch, PageTable
from kiln.state.application import APPLICATION, error_info, set_path
from kiln.state.store import StateStore

type ContextProvider = Callable[[Mapping[str, Any]], Mapping[str, Any] | Awaitable[Mapping[str, Any]]]

DOCUMENT_TEMPLATE = "document.html"
ERROR_TEMPLATE = "error.html"


def create_environment(
    config: KilnConfig,
    *,
    filters: Mapping[str, Callable[..., Any]] | None = None,
    globals_: Mapping[str, Any] | None = None,
) -> Environment:
    """Create a kida Environment from *config*.

    Templates are looked up in ``config.template_dir`` first, then in the
    built-in ``kiln/templates`` directory (``document.html``,
    ``error.html``).
    """
    loader = ChoiceLoader(
        [
            FileSystemLoader(str(config.template_dir)),
            PackageLoader("kiln", "templates"),
        ]
    )
    env = Environment(
        loader=loader,
        autoescape=config.autoescape,
        auto_reload=config.debug,
    )
    if filters:
        env.update_filters(dict(filters))
    for name, value in (globals_ or {}).items():
        env.add_global(name, value)
    return env


async def resolve_context(context: Mapping[str, Any]) -> dict[str, Any]:
    """Resolve awaitable context values concurrently.

    Plain values pass through unchanged. Returns a new dict.
    """
    resolved: dict[str, Any] = {}
    pending: dict[str, Awaitable[Any]] = {}

    for key, value in context.items():
        if inspect.isawaitable(value):
            pending[key] = value
        else:
            resolved[key] = value

    if not pending:
        return resolved

    results: dict[str, Any] = {}

    async def _resolve(key: str, awaitable: Awaitable[Any]) -> None:
        results[key] = await awaitable

    async with anyio.create_task_group() as tg:
        for key, awaitable in pending.items():
            tg.start_soon(_resolve, key, awaitable)

    resolved.update(results)
    return resolved


class TemplateRenderer:
    """Render callback that picks a kida template from the snapshot.

    ``pages`` maps page patterns (``"/"``, ``"/ticker/{symbol}"``, see
    ``kiln.render.routes``) to template names. Values captured from the
    path are dispatched into ``application.path_args`` (and ``args``)
    before the template renders. When the snapshot carries an error
    result, ``error_template`` renders instead, so the recovery render
    shows the error page with the right status.

    Templates receive ``state`` (the whole snapshot), ``application``
    (its application slice), ``error`` (``error_info`` or ``None``), plus
    whatever ``context(snapshot)`` returns. Awaitable values in that
    mapping are resolved concurrently before rendering starts.
    """

    __slots__ = ("_context", "env", "error_template", "pages", "table")

    def __init__(
        self,
        env: Environment,
        pages: Mapping[str, str],
        *,
        error_template: str = ERROR_TEMPLATE,
        context: ContextProvider | None = None,
    ) -> None:
        self.env = env
        self.pages = dict(pages)
        self.table = PageTable(self.pages)
        self.error_template = error_template
        self._context = context

    def match(self, snapshot: Mapping[str, Any]) -> PageMatch:
        """The page for ``application.path``. Raises ``RenderError`` (NOT_FOUND)."""
        path = snapshot[APPLICATION]["path"]
        page = self.table.match(path)
        if page is None:
            raise RenderError.not_found(f"No page for {path}")
        return page

    def template_for(self, snapshot: Mapping[str, Any]) -> str:
        if error_info(snapshot) is not None:
            return self.error_template
        return self.match(snapshot).template

    async def _build_context(self, snapshot: Mapping[str, Any]) -> dict[str, Any]:
        context: dict[str, Any] = {
            "state": snapshot,
            "application": snapshot[APPLICATION],
            "error": error_info(snapshot),
        }
        if self._context is not None:
            extra = self._context(snapshot)
            if inspect.isawaitable(extra):
                extra = await extra
            context.update(extra)
        return await resolve_context(context)

    async def __call__(self, store: StateStore, hooks: RenderHooks) -> AsyncIterator[str]:
        snapshot = store.snapshot()
        if error_info(snapshot) is None:
            application = snapshot[APPLICATION]
            page = self.match(snapshot)
            if page.path_args != application.get("path_args"):
                store.dispatch(
                    set_path(
                        application["path"],
                        query_args=application.get("query_args"),
                        path_args=page.path_args,
                    )
                )
                snapshot = store.snapshot()
            name = page.template
        else:
            name = self.error_template
        template = self.env.get_template(name)
        context = await self._build_context(snapshot)

        stream: Iterator[str] = template.render_stream(context)
        shell_sent = False
        for chunk in stream:
            if not chunk:
                continue
            yield chunk
            if not shell_sent:
                shell_sent = True
                hooks.shell_ready()
