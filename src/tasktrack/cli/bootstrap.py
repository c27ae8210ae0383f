# src/tasktrack/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures the local (gitignored) data directory exists,
- wires the HTTP / push-feed connectors into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..connectors.http_api import HttpAuthApi, HttpTaskApi
from ..connectors.ws_feed import WebSocketFeedConnector
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().

    httpx.AsyncClient binds to the loop it is first used on, so call this
    before any coroutine runs and only use the clients on the sync loop.
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    state = AppState(
        settings=settings,
        auth_api=HttpAuthApi(settings.api_url, timeout_seconds=settings.http_timeout_seconds),
        task_api=HttpTaskApi(settings.api_url, timeout_seconds=settings.http_timeout_seconds),
        feed_connector=WebSocketFeedConnector(settings.ws_url),
    )
    logger.info("Using API %s, push feed %s", settings.api_url, settings.ws_url)
    return state


async def close_connectors(state: AppState) -> None:
    """Close HTTP clients. Runs on the sync loop."""
    for api in (state.auth_api, state.task_api):
        aclose = getattr(api, "aclose", None)
        if aclose is None:
            continue
        try:
            await aclose()
        except Exception:
            logger.debug("HTTP client close failed.", exc_info=True)
