# tests/test_config.py

from __future__ import annotations

from pathlib import Path

import pytest

from tasktrack.cli.bootstrap import create_initial_state
from tasktrack.config import Settings, derive_ws_url
from tasktrack.connectors.http_api import HttpAuthApi, HttpTaskApi
from tasktrack.connectors.ws_feed import WebSocketFeedConnector

_VARS = (
    "APP_NAME",
    "LOG_LEVEL",
    "DATA_DIR",
    "API_URL",
    "WS_URL",
    "HTTP_TIMEOUT_SECONDS",
    "USERNAME",
    "PASSWORD",
    "CONSOLE_ENABLED",
)


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for suffix in _VARS:
        monkeypatch.delenv(f"TASKTRACK_{suffix}", raising=False)
    return monkeypatch


def test_derive_ws_url() -> None:
    assert derive_ws_url("http://localhost:6767") == "ws://localhost:6767/websocket"
    assert derive_ws_url("https://tasks.example.org/") == "wss://tasks.example.org/websocket"


def test_from_env_defaults(clean_env: pytest.MonkeyPatch) -> None:
    s = Settings.from_env()

    assert s.api_url == "http://localhost:6767"
    assert s.ws_url == "ws://localhost:6767/websocket"
    assert s.http_timeout_seconds == 10.0
    assert s.username is None and s.password is None
    assert s.console_enabled is True


def test_from_env_overrides(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    clean_env.setenv("TASKTRACK_API_URL", "https://api.example.org/")
    clean_env.setenv("TASKTRACK_HTTP_TIMEOUT_SECONDS", "0.1")
    clean_env.setenv("TASKTRACK_USERNAME", " alice ")
    clean_env.setenv("TASKTRACK_CONSOLE_ENABLED", "off")
    clean_env.setenv("TASKTRACK_DATA_DIR", str(tmp_path))

    s = Settings.from_env()

    assert s.api_url == "https://api.example.org"
    assert s.ws_url == "wss://api.example.org/websocket"
    assert s.http_timeout_seconds == 0.5
    assert s.username == "alice"
    assert s.console_enabled is False
    assert s.data_dir == tmp_path


def test_explicit_ws_url_wins(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("TASKTRACK_WS_URL", "ws://push.example.org/feed")
    assert Settings.from_env().ws_url == "ws://push.example.org/feed"


def test_create_initial_state_wires_connectors(settings) -> None:
    state = create_initial_state(settings=settings)

    assert settings.data_dir.is_dir()
    assert isinstance(state.auth_api, HttpAuthApi)
    assert isinstance(state.task_api, HttpTaskApi)
    assert isinstance(state.feed_connector, WebSocketFeedConnector)
    assert not state.logged_in
