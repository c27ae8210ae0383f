# src/tasktrack/connectors/http_api.py

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..core.errors import AuthError, NotFoundError, TransportError, ValidationError
from ..core.ports import AuthResult, Credential
from ..tasks.task_models import Task, TaskId

logger = logging.getLogger(__name__)


def _make_timeout_obj(timeout_s: float) -> httpx.Timeout:
    # Transport-level limits only; the sync engine itself never times out.
    return httpx.Timeout(timeout_s, connect=min(timeout_s, 5.0))


def _error_text(resp: httpx.Response) -> str:
    try:
        text = resp.text.strip()
    except Exception:
        text = ""
    return text or resp.reason_phrase or f"HTTP {resp.status_code}"


def _raise_for_status(resp: httpx.Response, what: str) -> None:
    code = resp.status_code
    if code < 400:
        return

    detail = _error_text(resp)
    if code in (401, 403):
        raise AuthError(f"{what}: {detail}")
    if code == 404:
        raise NotFoundError(f"{what}: {detail}")
    if code in (400, 409, 422):
        raise ValidationError(f"{what}: {detail}")
    raise TransportError(f"{what}: HTTP {code} {detail}")


def _json_or_none(resp: httpx.Response) -> Any:
    """Decoded JSON body, or None for empty / non-JSON replies."""
    if not resp.content or not resp.content.strip():
        return None
    try:
        return resp.json()
    except ValueError:
        logger.debug("Non-JSON reply ignored (status=%s)", resp.status_code)
        return None


class _HttpBase:
    """Shared httpx.AsyncClient plumbing: one client per base URL, typed errors."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=_make_timeout_obj(timeout_seconds),
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            transport=transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        what: str,
        credential: Credential | None = None,
        json_body: Any = None,
    ) -> httpx.Response:
        if credential is not None:
            # Every /auth and /task route reads the credential from the JSON body.
            json_body = {**(json_body or {}), "jwt": credential}
        try:
            resp = await self._client.request(method, path, json=json_body)
        except httpx.HTTPError as e:
            raise TransportError(f"{what}: {e!r}") from e
        _raise_for_status(resp, what)
        return resp

    async def aclose(self) -> None:
        await self._client.aclose()


class HttpAuthApi(_HttpBase):
    """/auth/* endpoints."""

    async def login(self, username: str, password: str) -> AuthResult:
        resp = await self._request(
            "POST",
            "/auth/login",
            what="login",
            json_body={"username": username, "password": password},
        )
        return self._auth_result(resp, fallback_name=username)

    async def register(self, username: str, password: str) -> AuthResult:
        if not username.strip() or not password:
            raise ValidationError("username and password are required")
        resp = await self._request(
            "POST",
            "/auth/register",
            what="register",
            json_body={"username": username, "password": password},
        )
        return self._auth_result(resp, fallback_name=username)

    async def logout(self, credential: Credential) -> bool:
        try:
            await self._request("POST", "/auth/logout", what="logout", credential=credential)
            return True
        except Exception:
            logger.warning("Logout call failed (ignored)", exc_info=True)
            return False

    @staticmethod
    def _auth_result(resp: httpx.Response, *, fallback_name: str) -> AuthResult:
        data = _json_or_none(resp)
        if not isinstance(data, dict) or not isinstance(data.get("jwt"), str) or not data["jwt"]:
            raise TransportError("auth reply did not contain a credential")
        name = data.get("username")
        return AuthResult(
            credential=data["jwt"],
            display_name=name if isinstance(name, str) and name else fallback_name,
        )


class HttpTaskApi(_HttpBase):
    """
    /task endpoints.

    The credential travels as the `jwt` field of the JSON body, GET and
    DELETE included. Updates send the full task document.
    """

    async def list_tasks(self, credential: Credential) -> list[Task]:
        resp = await self._request("GET", "/task", what="list tasks", credential=credential)
        data = _json_or_none(resp)
        if not isinstance(data, list):
            raise TransportError("list tasks: expected a JSON array")

        tasks: list[Task] = []
        for item in data:
            try:
                tasks.append(Task.from_dict(item))
            except ValueError as e:
                # One bad record must not hide the rest of the collection.
                logger.warning("Skipping malformed task in bulk load: %s", e)
        logger.debug("Bulk load fetched %d tasks", len(tasks))
        return tasks

    async def create_task(self, credential: Credential, task: Task) -> Task | None:
        body = task.to_dict()
        body.pop("id", None)
        resp = await self._request("POST", "/task", what="create task", credential=credential, json_body=body)
        return self._task_or_none(resp, "create task")

    async def update_task(self, credential: Credential, task: Task) -> Task | None:
        body = task.to_dict()
        body.pop("id", None)
        resp = await self._request(
            "POST",
            f"/task/{task.id}",
            what="update task",
            credential=credential,
            json_body=body,
        )
        return self._task_or_none(resp, "update task")

    async def delete_task(self, credential: Credential, task_id: TaskId) -> None:
        await self._request("DELETE", f"/task/{task_id}", what="delete task", credential=credential)

    @staticmethod
    def _task_or_none(resp: httpx.Response, what: str) -> Task | None:
        data = _json_or_none(resp)
        if data is None:
            return None
        try:
            return Task.from_dict(data)
        except ValueError as e:
            logger.warning("%s: reply is not a task (%s); waiting for push", what, e)
            return None
