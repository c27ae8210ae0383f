# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from tasktrack.core.session import Session
from tasktrack.core.state import AppState

from .fakes import FakeAuthApi, FakeFeedConnector, FakeTaskApi


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="tasktrack-test",
        log_level="DEBUG",
        data_dir=tmp_path / "data",
        api_url="http://testserver",
        ws_url="ws://testserver/websocket",
        http_timeout_seconds=2.0,
        username=None,
        password=None,
        console_enabled=False,
    )


@pytest.fixture()
def task_api() -> FakeTaskApi:
    return FakeTaskApi(next_id=7)


@pytest.fixture()
def feed() -> FakeFeedConnector:
    return FakeFeedConnector()


@pytest.fixture()
def session() -> Session:
    return Session(credential="token-1", display_name="alice")


@pytest.fixture()
def state(settings: SimpleNamespace, task_api: FakeTaskApi, feed: FakeFeedConnector) -> AppState:
    """AppState wired with deterministic fakes (no sync thread)."""
    return AppState(
        settings=settings,
        auth_api=FakeAuthApi(),
        task_api=task_api,
        feed_connector=feed,
    )
