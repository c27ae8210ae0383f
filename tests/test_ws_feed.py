# tests/test_ws_feed.py

from __future__ import annotations

import http
import json

import pytest
from websockets.asyncio.server import serve

from tasktrack.connectors.ws_feed import WebSocketFeedConnector, _feed_url
from tasktrack.core.errors import AuthError, TransportError


def test_feed_url_appends_credential() -> None:
    assert _feed_url("ws://h/websocket", "a b") == "ws://h/websocket?jwt=a+b"
    assert _feed_url("ws://h/websocket?v=1", "t") == "ws://h/websocket?v=1&jwt=t"


@pytest.mark.asyncio
async def test_connect_receives_frames_and_sends() -> None:
    received: list[str] = []
    paths: list[str] = []

    async def handler(ws) -> None:
        paths.append(ws.request.path)
        await ws.send(json.dumps({"type": "task_deleted", "task_id": "x"}))
        received.append(await ws.recv())
        await ws.close()

    async with serve(handler, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        conn = await WebSocketFeedConnector(f"ws://127.0.0.1:{port}/websocket").connect("tok")

        frames = []
        async for frame in conn:
            frames.append(frame)
            await conn.send('{"type":"refresh_jwt","jwt":"tok2"}')
        await conn.close()

    assert frames == ['{"type": "task_deleted", "task_id": "x"}']
    assert received == ['{"type":"refresh_jwt","jwt":"tok2"}']
    assert paths == ["/websocket?jwt=tok"]


@pytest.mark.asyncio
async def test_rejected_handshake_maps_to_auth_error() -> None:
    def process_request(connection, request):
        return connection.respond(http.HTTPStatus.UNAUTHORIZED, "JWT has been revoked\n")

    async def handler(ws) -> None:
        await ws.close()

    async with serve(handler, "127.0.0.1", 0, process_request=process_request) as server:
        port = server.sockets[0].getsockname()[1]
        with pytest.raises(AuthError):
            await WebSocketFeedConnector(f"ws://127.0.0.1:{port}/websocket").connect("tok")


@pytest.mark.asyncio
async def test_unreachable_server_is_transport_error() -> None:
    connector = WebSocketFeedConnector("ws://127.0.0.1:1/websocket", open_timeout=2.0)
    with pytest.raises(TransportError):
        await connector.connect("tok")
