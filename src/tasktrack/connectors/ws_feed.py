# src/tasktrack/connectors/ws_feed.py

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from urllib.parse import urlencode

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import InvalidHandshake, InvalidStatus

from ..core.errors import AuthError, TransportError
from ..core.ports import Credential

logger = logging.getLogger(__name__)


def _feed_url(ws_url: str, credential: Credential) -> str:
    sep = "&" if "?" in ws_url else "?"
    return f"{ws_url}{sep}{urlencode({'jwt': credential})}"


class WebSocketFeedConnection:
    """Adapts a websockets ClientConnection to the FeedConnection port."""

    def __init__(self, ws: ClientConnection) -> None:
        self._ws = ws

    async def __aiter__(self) -> AsyncIterator[str]:
        # Ends quietly on a normal close; ConnectionClosedError propagates.
        async for message in self._ws:
            if isinstance(message, bytes):
                message = message.decode("utf-8", errors="replace")
            yield message

    async def send(self, message: str) -> None:
        await self._ws.send(message)

    async def close(self) -> None:
        await self._ws.close()


class WebSocketFeedConnector:
    """Opens `<ws_url>?jwt=<credential>` connections."""

    def __init__(self, ws_url: str, *, open_timeout: float = 10.0) -> None:
        self._ws_url = ws_url
        self._open_timeout = open_timeout

    async def connect(self, credential: Credential) -> WebSocketFeedConnection:
        url = _feed_url(self._ws_url, credential)
        try:
            ws = await connect(url, open_timeout=self._open_timeout)
        except InvalidStatus as e:
            status = e.response.status_code
            if status in (401, 403):
                raise AuthError(f"push feed rejected credential (HTTP {status})") from e
            raise TransportError(f"push feed handshake failed (HTTP {status})") from e
        except (InvalidHandshake, OSError, TimeoutError) as e:
            raise TransportError(f"push feed connect failed: {e!r}") from e

        logger.info("Push feed connected to %s", self._ws_url)
        return WebSocketFeedConnection(ws)
