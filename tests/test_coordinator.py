"""Tests for kiln.render.coordinator — phases, recovery, and the deadline."""

import asyncio
import time

import pytest

from kiln.config import KilnConfig
from kiln.errors import ErrorKind, RenderError
from kiln.render.coordinator import RenderCoordinator, RenderPhase
from kiln.state.application import APPLICATION, route_result
from kiln.state.hydration import extract_hydration_state

R = RenderPhase

HEAD = b"<html><head><title>t</title></head>"
BODY = b"<body>ok</body></html>"


def page_of(store) -> bytes:
    snapshot = store.snapshot()
    error = snapshot[APPLICATION]["response"]["error_info"]
    if error is not None:
        return HEAD + f"<body>{error['message']}</body></html>".encode()
    return HEAD + BODY


class Calls:
    def __init__(self) -> None:
        self.count = 0


async def run(render, make_request, recorder, *, config: KilnConfig | None = None, **request_kwargs):
    coordinator = RenderCoordinator(render, config=config or KilnConfig())
    result = await coordinator.run(make_request(**request_kwargs), recorder)
    return coordinator, result


class TestSuccess:
    async def test_streams_with_injection(self, make_request, recorder) -> None:
        async def render(store, hooks):
            yield HEAD
            hooks.shell_ready()
            yield BODY

        coordinator, result = await run(render, make_request, recorder)

        assert recorder.status == 200
        assert len(recorder.starts) == 1
        assert recorder.closed
        headers = dict(recorder.starts[0]["headers"])
        assert headers[b"content-type"] == b"text/html; charset=utf-8"
        assert recorder.text.index("window.__STATE__") < recorder.text.index("</head>")
        assert coordinator.transitions == [R.RENDERING, R.SUCCESS]
        assert result.phase is R.SUCCESS
        assert result.injected is True
        assert result.head.startswith(b"<script>window.__STATE__")

    async def test_nothing_written_before_shell_ready(self, make_request, recorder) -> None:
        observed: list[int] = []

        async def render(store, hooks):
            yield HEAD
            observed.append(len(recorder.messages))
            hooks.shell_ready()
            await asyncio.sleep(0.01)
            observed.append(len(recorder.starts))
            yield BODY

        await run(render, make_request, recorder)

        assert observed == [0, 1]

    async def test_stream_without_shell_ready_is_all_shell(self, make_request, recorder) -> None:
        async def render(store, hooks):
            yield HEAD
            yield BODY

        coordinator, _ = await run(render, make_request, recorder)

        assert recorder.status == 200
        assert b"<body>ok</body>" in recorder.body
        assert coordinator.phase is R.SUCCESS

    async def test_status_comes_from_state(self, make_request, recorder) -> None:
        async def render(store, hooks):
            store.dispatch(route_result(404))
            yield HEAD + BODY

        await run(render, make_request, recorder)

        assert recorder.status == 404
        state = extract_hydration_state(recorder.body)
        assert state[APPLICATION]["response"]["status"] == 404

    async def test_str_chunks_and_sync_iterables(self, make_request, recorder) -> None:
        def render(store, hooks):
            return [HEAD.decode(), BODY.decode()]

        await run(render, make_request, recorder)

        assert recorder.status == 200
        assert recorder.body.endswith(BODY)

    async def test_coroutine_returning_stream(self, make_request, recorder) -> None:
        async def render(store, hooks):
            return HEAD + BODY

        await run(render, make_request, recorder)

        assert recorder.body.endswith(BODY)

    async def test_head_fragments_and_modules(self, make_request, recorder) -> None:
        config = KilnConfig(head_fragments=('<link rel="stylesheet" href="/a.css">',), bootstrap_modules=("/app.js",))

        async def render(store, hooks):
            yield HEAD + BODY

        await run(render, make_request, recorder, config=config)

        text = recorder.text
        css = text.index("/a.css")
        state = text.index("window.__STATE__")
        module = text.index('src="/app.js"')
        assert css < state < module < text.index("</head>")

    async def test_initial_state_from_request(self, make_request, recorder) -> None:
        seen = {}

        async def render(store, hooks):
            seen.update(store.snapshot())
            yield HEAD + BODY

        await run(
            render,
            make_request,
            recorder,
            path="/options",
            query=b"symbol=AAPL&x=1&x=2",
            state={"user": {"id": 7}, APPLICATION: {"locale": "de-DE"}},
        )

        application = seen[APPLICATION]
        assert application["path"] == "/options"
        assert application["query_args"] == {"symbol": "AAPL", "x": ["1", "2"]}
        assert application["locale"] == "de-DE"
        assert application["response"]["status"] == 200
        assert seen["user"] == {"id": 7}


class TestRecovery:
    async def test_not_found_before_flush_recovers_with_404(self, make_request, recorder) -> None:
        calls = Calls()

        async def render(store, hooks):
            calls.count += 1
            if store.snapshot()[APPLICATION]["response"]["error_info"] is None:
                raise RenderError.not_found("no page for /nope")
            yield page_of(store)

        coordinator, result = await run(render, make_request, recorder, path="/nope")

        assert calls.count == 2
        assert recorder.status == 404
        assert len(recorder.starts) == 1
        assert coordinator.transitions == [R.RENDERING, R.RECOVERING, R.SUCCESS]
        assert result.error.kind is ErrorKind.NOT_FOUND
        state = extract_hydration_state(recorder.body)
        info = state[APPLICATION]["response"]["error_info"]
        assert info["message"] == "no page for /nope"
        assert "Traceback" in info["stack"]

    async def test_unclassified_error_becomes_500(self, make_request, recorder) -> None:
        async def render(store, hooks):
            if store.snapshot()[APPLICATION]["response"]["error_info"] is None:
                raise KeyError("boom")
            yield page_of(store)

        coordinator, _ = await run(render, make_request, recorder)

        assert recorder.status == 500
        assert coordinator.error.kind is ErrorKind.UNCLASSIFIED

    async def test_hook_error_before_flush_recovers(self, make_request, recorder) -> None:
        calls = Calls()

        async def render(store, hooks):
            calls.count += 1
            if calls.count == 1:
                yield HEAD
                hooks.error(RenderError.not_found("gone"), {"component": "Page"})
                await asyncio.sleep(10)
            yield page_of(store)

        coordinator, _ = await run(render, make_request, recorder, config=KilnConfig(render_timeout=2.0))

        assert calls.count == 2
        assert recorder.status == 404
        assert coordinator.transitions == [R.RENDERING, R.RECOVERING, R.SUCCESS]

    async def test_recovery_store_is_fresh(self, make_request, recorder) -> None:
        stores = []

        async def render(store, hooks):
            stores.append(store)
            if len(stores) == 1:
                raise RuntimeError("first")
            yield page_of(store)

        await run(render, make_request, recorder)

        assert stores[0] is not stores[1]
        assert stores[0].snapshot()[APPLICATION]["response"]["error_info"] is None


class TestAfterFlush:
    async def test_error_after_flush_ends_stream_without_recovery(self, make_request, recorder) -> None:
        calls = Calls()

        async def render(store, hooks):
            calls.count += 1
            yield HEAD
            hooks.shell_ready()
            yield b"<body>partial"
            raise RuntimeError("late failure")

        coordinator, _ = await run(render, make_request, recorder)

        assert calls.count == 1
        assert len(recorder.starts) == 1
        assert recorder.status == 200
        assert recorder.closed
        assert recorder.body.endswith(b"<body>partial")
        assert R.RECOVERING not in coordinator.transitions
        assert coordinator.transitions == [R.RENDERING, R.SUCCESS]

    async def test_hook_error_after_flush_is_logged_only(self, make_request, recorder, caplog) -> None:
        async def render(store, hooks):
            yield HEAD
            hooks.shell_ready()
            await asyncio.sleep(0)
            hooks.error(ValueError("suspended boundary failed"))
            yield BODY

        coordinator, _ = await run(render, make_request, recorder)

        assert len(recorder.starts) == 1
        assert recorder.closed
        assert coordinator.phase is R.SUCCESS
        assert "recovery skipped" in caplog.text


class TestFailed:
    async def test_double_failure_writes_fallback(self, make_request, recorder) -> None:
        calls = Calls()

        async def render(store, hooks):
            calls.count += 1
            raise RuntimeError(f"attempt {calls.count}")
            yield b""

        coordinator, result = await run(render, make_request, recorder)

        assert calls.count == 2
        assert recorder.status == 500
        assert len(recorder.starts) == 1
        assert recorder.closed
        assert b"__STATE__" not in recorder.body
        assert b"<script" not in recorder.body
        assert coordinator.transitions == [R.RENDERING, R.RECOVERING, R.FAILED]
        assert result.error.kind is ErrorKind.RECOVERY

    async def test_debug_fallback_includes_detail(self, make_request, recorder) -> None:
        async def render(store, hooks):
            raise RuntimeError("kaput")

        await run(render, make_request, recorder, config=KilnConfig(debug=True))

        assert b"kaput" in recorder.body


class TestDeadline:
    async def test_never_settling_render_is_aborted(self, make_request, recorder) -> None:
        calls = Calls()

        async def render(store, hooks):
            calls.count += 1
            yield HEAD
            await asyncio.Event().wait()

        started = time.monotonic()
        coordinator, result = await run(render, make_request, recorder, config=KilnConfig(render_timeout=0.05))
        elapsed = time.monotonic() - started

        assert elapsed < 0.05 + 0.5
        assert coordinator.phase is R.ABORTED
        assert coordinator.transitions == [R.RENDERING, R.ABORTED]
        assert calls.count == 1
        assert recorder.messages == []
        assert result.error.kind is ErrorKind.TIMEOUT
        assert result.status is None

    async def test_abort_during_recovery_is_terminal(self, make_request, recorder) -> None:
        calls = Calls()

        async def render(store, hooks):
            calls.count += 1
            if calls.count == 1:
                raise RuntimeError("first")
            await asyncio.Event().wait()
            yield b""

        coordinator, _ = await run(render, make_request, recorder, config=KilnConfig(render_timeout=0.05))

        assert coordinator.transitions == [R.RENDERING, R.RECOVERING, R.ABORTED]
        assert calls.count == 2
        assert recorder.messages == []

    async def test_stall_after_shell_flush_is_cut_off(self, make_request, recorder) -> None:
        calls = Calls()

        async def render(store, hooks):
            calls.count += 1
            yield HEAD
            hooks.shell_ready()
            yield b"<body>"
            await asyncio.Event().wait()
            yield BODY

        started = time.monotonic()
        coordinator, result = await run(render, make_request, recorder, config=KilnConfig(render_timeout=0.05))
        elapsed = time.monotonic() - started

        assert elapsed < 0.05 + 0.5
        assert coordinator.transitions == [R.RENDERING, R.SUCCESS]
        assert calls.count == 1
        assert len(recorder.starts) == 1
        assert recorder.status == 200
        assert recorder.body.endswith(b"<body>")
        assert recorder.closed
        assert result.error.kind is ErrorKind.TIMEOUT

    async def test_body_finished_before_deadline_is_untouched(self, make_request, recorder) -> None:
        async def render(store, hooks):
            yield HEAD
            hooks.shell_ready()
            yield BODY

        coordinator, result = await run(render, make_request, recorder, config=KilnConfig(render_timeout=0.05))
        await asyncio.sleep(0.1)

        assert coordinator.phase is R.SUCCESS
        assert recorder.body.endswith(BODY)
        assert result.error is None
        closing = [m for m in recorder.messages if m["type"] == "http.response.body" and not m["more_body"]]
        assert len(closing) == 1


class TestValidation:
    @pytest.mark.parametrize("method", ["GET", "HEAD"])
    async def test_bodyless_method_rejected(self, make_request, recorder, method) -> None:
        calls = Calls()

        async def render(store, hooks):
            calls.count += 1
            yield b""

        coordinator, _ = await run(render, make_request, recorder, method=method, body=b"")

        assert recorder.status == 400
        assert calls.count == 0
        assert coordinator.phase is R.REJECTED

    @pytest.mark.parametrize(
        "body",
        [b"", b"not json", b"[1, 2]", b'{"assigns": 3}', b'{"assigns": {"state": []}}'],
    )
    async def test_malformed_body_rejected(self, make_request, recorder, body) -> None:
        async def render(store, hooks):
            yield b""

        await run(render, make_request, recorder, body=body)

        assert recorder.status == 400
        assert len(recorder.starts) == 1

    async def test_oversized_body_rejected(self, make_request, recorder) -> None:
        async def render(store, hooks):
            yield b""

        config = KilnConfig(max_content_length=8)
        await run(render, make_request, recorder, config=config, state={"big": "x" * 64})

        assert recorder.status == 400
