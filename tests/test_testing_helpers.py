"""Tests for kiln.testing — the ASGI test client and memory transport."""

import pytest

from kiln import App
from kiln.client.channel.message import ChannelMessage
from kiln.errors import ChannelError
from kiln.testing import MemoryTransport, TestClient, TestResponse, acknowledge


async def echo_path(store, hooks):
    yield "<html><head></head>"
    hooks.shell_ready()
    yield f"<body>{store.snapshot()['application']['path']}</body></html>"


class TestTestResponse:
    def test_empty(self) -> None:
        response = TestResponse()
        assert response.status is None
        assert response.headers == {}
        assert response.body == b""
        assert not response.complete
        assert response.state() is None


class TestTestClient:
    async def test_render_posts_assigns(self) -> None:
        async with TestClient(App(echo_path)) as client:
            response = await client.render("/a", state={"application": {"path": "/b"}})

        assert response.status == 200
        assert "<body>/b</body>" in response.text

    async def test_query_string_reaches_state(self) -> None:
        async with TestClient(App(echo_path)) as client:
            response = await client.render("/search?q=kiln")

        assert response.state()["application"]["query_args"] == {"q": "kiln"}

    async def test_raw_post(self) -> None:
        async with TestClient(App(echo_path)) as client:
            response = await client.post("/", body=b"{broken", headers={"content-type": "application/json"})

        assert response.status == 400


class TestMemoryTransport:
    async def test_acknowledge_replies(self) -> None:
        transport = MemoryTransport(responder=acknowledge)
        join = ChannelMessage("t", "phx_join", ref="1", join_ref="1")

        await transport.send(join.encode())
        answer = ChannelMessage.decode(await transport.recv())

        assert transport.sent == [join]
        assert answer.reply_status == "ok"
        assert answer.ref == "1"

    async def test_next_sent_filters_events(self) -> None:
        transport = MemoryTransport()
        await transport.send(ChannelMessage("t", "a").encode())
        await transport.send(ChannelMessage("t", "b").encode())

        assert (await transport.next_sent("b")).event == "b"

    async def test_closed(self) -> None:
        transport = MemoryTransport()
        await transport.close()

        with pytest.raises(ChannelError):
            await transport.recv()
        with pytest.raises(ChannelError):
            await transport.send(ChannelMessage("t", "a").encode())
