# src/tasktrack/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the HTTP API / push feed swappable and makes testing easier.
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol

from ..tasks.task_models import Task, TaskId

Credential = str
# Opaque session token issued by the auth service. Never parsed client-side.


@dataclass(frozen=True, slots=True)
class AuthResult:
    credential: Credential
    display_name: str


class AuthApi(Protocol):
    """Authentication service. Raises AuthError / ValidationError / TransportError."""

    async def login(self, username: str, password: str) -> AuthResult: ...
    async def register(self, username: str, password: str) -> AuthResult: ...

    async def logout(self, credential: Credential) -> bool:
        """Best-effort: never raises, returns False on any failure."""
        ...


class TaskApi(Protocol):
    """
    Request/response task endpoints.

    Mutating calls return the canonical task when the server sends one back,
    or None when the reply carries no body.
    """

    async def list_tasks(self, credential: Credential) -> list[Task]: ...
    async def create_task(self, credential: Credential, task: Task) -> Task | None: ...
    async def update_task(self, credential: Credential, task: Task) -> Task | None: ...
    async def delete_task(self, credential: Credential, task_id: TaskId) -> None: ...


class FeedConnection(Protocol):
    """One open push-feed connection delivering raw text frames."""

    def __aiter__(self) -> AsyncIterator[str]: ...
    async def send(self, message: str) -> None: ...
    async def close(self) -> None: ...


class FeedConnector(Protocol):
    async def connect(self, credential: Credential) -> FeedConnection: ...
