"""Render coordination — one request, end to end.

The coordinator owns a single render: it validates the request, builds the
initial snapshot, drives the render callback, and decides what reaches the
client. Phases::

    RENDERING ──▶ SUCCESS
        │
        ├──▶ RECOVERING ──▶ SUCCESS
        │         └──────▶ FAILED
        └──▶ ABORTED            (deadline, from RENDERING or RECOVERING)

- **RENDERING** — the callback streams chunks. Nothing is written until the
  shell is ready (``hooks.shell_ready()``, or the stream ends).
- **SUCCESS** — status comes from the snapshot, the hydration payload is
  injected before ``</head>``, held and later chunks stream through.
- **RECOVERING** — an error before the first byte was written re-runs the
  callback once with an error snapshot. Errors after the first byte only
  close the stream.
- **FAILED** — the recovery render failed too: a minimal non-streamed
  document is written instead.
- **ABORTED** — the deadline fired before SUCCESS or FAILED. Terminal.

The deadline stays armed while a SUCCESS body streams. Firing then cancels
the render and closes the stream as written: the status stands and there
is no recovery.

SUCCESS, FAILED, and ABORTED *settle* the request. Settling is guarded by a
single flag, so a deadline firing after SUCCESS never changes the status
and a success arriving after ABORTED never happens (the render task is
cancelled).
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator, AsyncIterable, Callable, Iterable, Mapping
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum
from typing import Any

from kiln._internal.asgi import Send
from kiln._internal.invoke import invoke
from kiln.config import KilnConfig
from kiln.errors import ErrorKind, RenderError, classify_error
from kiln.http.request import Request
from kiln.render.fallback import error_response, fallback_response
from kiln.render.injector import InjectionSpec, StreamInjector
from kiln.render.request import RenderRequest
from kiln.server.sender import ResponseWriter
from kiln.server.terminal_errors import log_error
from kiln.state.application import response_status, set_error_result
from kiln.state.hydration import hydration_script
from kiln.state.store import Reducer, StateStore

logger = logging.getLogger("kiln.render")

type Chunk = bytes | str
type RenderCallback = Callable[[StateStore, RenderHooks], Any]
"""``render(store, hooks)`` returning an (async) iterable of chunks, or an
awaitable resolving to one."""


class RenderPhase(Enum):
    REJECTED = "rejected"
    RENDERING = "rendering"
    RECOVERING = "recovering"
    SUCCESS = "success"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass(frozen=True, slots=True)
class RenderResult:
    """Outcome of one coordinated render.

    ``status`` is the HTTP status written (``None`` if nothing was
    written), ``head`` the bytes injected before the anchor, and
    ``body_bytes`` the body size that reached the transport.
    """

    phase: RenderPhase
    status: int | None
    head: bytes
    body_bytes: int
    injected: bool
    error: RenderError | None = None


class RenderHooks:
    """Signals a render callback sends back to the coordinator.

    One instance per attempt. ``shell_ready()`` says everything yielded so
    far may be flushed. ``error()`` reports a failure without raising.
    """

    __slots__ = ("_signal", "context", "failure", "ready")

    def __init__(self) -> None:
        self._signal = asyncio.Event()
        self.ready = False
        self.failure: BaseException | None = None
        self.context: Mapping[str, Any] = {}

    def shell_ready(self) -> None:
        self.ready = True
        self._signal.set()

    def error(self, exc: BaseException, context: Mapping[str, Any] | None = None) -> None:
        if self.failure is None:
            self.failure = exc
            self.context = dict(context or {})
        self._signal.set()

    async def wait(self) -> None:
        await self._signal.wait()
        self._signal.clear()


_DONE = object()


def _encode(chunk: Chunk) -> bytes:
    return chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk)


async def _iter_chunks(stream: Any) -> AsyncGenerator[bytes]:
    """Normalize whatever the callback returned into non-empty byte chunks."""
    if isinstance(stream, (bytes, bytearray, str)):
        if stream:
            yield _encode(stream)
        return
    if isinstance(stream, AsyncGenerator):
        async with aclosing(stream):
            async for chunk in stream:
                if chunk:
                    yield _encode(chunk)
        return
    if isinstance(stream, AsyncIterable):
        async for chunk in stream:
            if chunk:
                yield _encode(chunk)
        return
    if isinstance(stream, Iterable):
        for chunk in stream:
            if chunk:
                yield _encode(chunk)
        return
    msg = f"render callback must return an iterable of chunks, got {type(stream).__name__}"
    raise TypeError(msg)


class RenderCoordinator:
    """Drives one render through the phase machine.

    Single-use: create one per request::

        coordinator = RenderCoordinator(render, config=config)
        result = await coordinator.run(request, send)
    """

    def __init__(
        self,
        render: RenderCallback,
        *,
        config: KilnConfig | None = None,
        reducers: Mapping[str, Reducer] | None = None,
    ) -> None:
        self._render = render
        self.config = config or KilnConfig()
        self._reducers = reducers
        self._settled = False
        self._expired = False
        self._writer: ResponseWriter | None = None
        self._task: asyncio.Task[None] | None = None
        self._label = "render"
        self._head = b""
        self._injector: StreamInjector | None = None
        self.phase = RenderPhase.RENDERING
        self.transitions: list[RenderPhase] = [RenderPhase.RENDERING]
        self.error: RenderError | None = None
        self.store: StateStore | None = None

    @property
    def settled(self) -> bool:
        return self._settled

    # -- Phase bookkeeping --

    def _transition(self, phase: RenderPhase) -> None:
        logger.debug("%s: %s -> %s", self._label, self.phase.value, phase.value)
        self.phase = phase
        self.transitions.append(phase)

    def _settle(self, phase: RenderPhase) -> bool:
        """Claim the response for *phase*. First caller wins."""
        if self._settled:
            return False
        self._settled = True
        self._transition(phase)
        return True

    def _on_deadline(self) -> None:
        if self._settle(RenderPhase.ABORTED):
            logger.warning(
                "%s aborted: no response after %.1fs", self._label, self.config.render_timeout
            )
        elif self.phase is RenderPhase.SUCCESS and self._writer is not None and not self._writer.finished:
            # Status already sent: stop the body and close what was written
            logger.warning(
                "%s cut off: body still streaming after %.1fs", self._label, self.config.render_timeout
            )
        else:
            return
        self._expired = True
        self.error = RenderError(ErrorKind.TIMEOUT)
        if self._task is not None:
            self._task.cancel()

    # -- Entry point --

    async def run(self, request: Request, send: Send) -> RenderResult:
        """Render *request* and write the response through *send*."""
        self._label = f"{request.method} {request.path}"
        writer = ResponseWriter(send)
        self._writer = writer

        try:
            render_request = await RenderRequest.from_request(
                request, max_body=self.config.max_content_length
            )
        except RenderError as exc:
            logger.info("%d %s — %s", exc.status, self._label, exc.message)
            self.error = exc
            self._settle(RenderPhase.REJECTED)
            await writer.complete(error_response(exc.status, exc.message))
            return self._result(writer)

        loop = asyncio.get_running_loop()
        self._task = asyncio.create_task(self._drive(render_request, writer))
        timer = loop.call_later(self.config.render_timeout, self._on_deadline)
        try:
            await self._task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if not self._expired or (current and current.cancelling()):
                self._task.cancel()
                raise
        finally:
            timer.cancel()

        if self._expired and writer.started and self._injector is not None:
            await self._close_as_is(self._injector, writer)

        return self._result(writer)

    def _result(self, writer: ResponseWriter) -> RenderResult:
        return RenderResult(
            phase=self.phase,
            status=writer.status,
            head=self._head,
            body_bytes=writer.bytes_sent,
            injected=self._injector.injected if self._injector is not None else False,
            error=self.error,
        )

    # -- Phases --

    async def _drive(self, request: RenderRequest, writer: ResponseWriter) -> None:
        store = StateStore(request.initial_state(), reducers=self._reducers)
        self.store = store

        failure = await self._attempt(store, writer)
        if failure is None or self._settled:
            return

        error = classify_error(failure)
        self.error = error
        log_error(failure, self._label)
        self._transition(RenderPhase.RECOVERING)

        error_state = set_error_result(store.snapshot(), error.status, error.message, error.stack)
        store = StateStore(error_state, reducers=self._reducers)
        self.store = store

        failure = await self._attempt(store, writer)
        if failure is None or self._settled:
            return

        log_error(failure, f"{self._label} (recovering)")
        self.error = RenderError(ErrorKind.RECOVERY, str(failure) or type(failure).__name__)
        if self._settle(RenderPhase.FAILED):
            await writer.complete(
                fallback_response(debug=self.config.debug, detail=str(self.error))
            )

    def injection_spec(self, snapshot: Mapping[str, Any]) -> InjectionSpec:
        """Bootstrap content for *snapshot*: head fragments, state, modules."""
        return InjectionSpec(
            fragments=(
                *self.config.head_fragments,
                hydration_script(snapshot, self.config.state_global),
            ),
            anchor=self.config.anchor_bytes,
            modules=self.config.bootstrap_modules,
        )

    async def _commit(
        self,
        store: StateStore,
        writer: ResponseWriter,
        held: list[bytes],
    ) -> StreamInjector | None:
        """Enter SUCCESS: write the status once and flush the held shell."""
        if not self._settle(RenderPhase.SUCCESS):
            return None
        snapshot = store.snapshot()
        spec = self.injection_spec(snapshot)
        self._head = spec.render()
        injector = StreamInjector(spec, window=self.config.effective_tail_window)
        self._injector = injector
        await writer.start(response_status(snapshot))
        for chunk in held:
            await writer.write(injector.feed(chunk))
        held.clear()
        return injector

    async def _close_as_is(self, injector: StreamInjector, writer: ResponseWriter) -> None:
        await writer.write(injector.close())
        await writer.finish()

    async def _attempt(self, store: StateStore, writer: ResponseWriter) -> BaseException | None:
        """Run the callback once.

        Returns the failure if it happened before anything was written
        (the caller decides about recovery), otherwise ``None``.
        """
        hooks = RenderHooks()
        try:
            stream = await invoke(self._render, store, hooks)
            chunks = _iter_chunks(stream)
        except Exception as exc:
            return exc

        held: list[bytes] = []
        injector: StreamInjector | None = None
        pending: asyncio.Task[Any] | None = None
        signal: asyncio.Task[None] | None = None

        async def _next() -> Any:
            return await anext(chunks, _DONE)

        try:
            while True:
                if injector is None:
                    if hooks.failure is not None:
                        return hooks.failure
                    if hooks.ready:
                        injector = await self._commit(store, writer, held)
                        if injector is None:
                            return None
                elif hooks.failure is not None:
                    log_error(hooks.failure, f"{self._label} (after flush, recovery skipped)")
                    await self._close_as_is(injector, writer)
                    return None

                if pending is None:
                    pending = asyncio.create_task(_next())

                if injector is None:
                    # Wake on the next chunk or on a hook, whichever comes first
                    signal = asyncio.create_task(hooks.wait())
                    done, _ = await asyncio.wait(
                        {pending, signal}, return_when=asyncio.FIRST_COMPLETED
                    )
                    if signal not in done:
                        signal.cancel()
                    signal = None
                    if pending not in done:
                        continue
                else:
                    await asyncio.wait({pending})

                task, pending = pending, None
                chunk = task.result()
                if chunk is _DONE:
                    break
                if injector is None:
                    held.append(chunk)
                else:
                    await writer.write(injector.feed(chunk))

            if injector is None:
                if hooks.failure is not None:
                    return hooks.failure
                # Finished without shell_ready(): the whole output is the shell
                injector = await self._commit(store, writer, held)
                if injector is None:
                    return None
            elif hooks.failure is not None:
                log_error(hooks.failure, f"{self._label} (after flush, recovery skipped)")
            await self._close_as_is(injector, writer)
            return None
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if injector is None:
                return exc
            log_error(exc, f"{self._label} (after flush, recovery skipped)")
            await self._close_as_is(injector, writer)
            return None
        finally:
            if signal is not None:
                signal.cancel()
            if pending is not None:
                if not pending.done():
                    pending.cancel()
                    with contextlib.suppress(asyncio.CancelledError, StopAsyncIteration):
                        await pending
                elif not pending.cancelled():
                    pending.exception()
            await chunks.aclose()
