# src/tasktrack/tasks/sync_channel.py

from __future__ import annotations

"""
Remote sync channel.

Two inputs feed the session's TaskStore from the server side:
- the bulk load (once per session, hard reset)
- the push feed (indefinitely, one event at a time)

Feed frames are parsed into FeedEvent objects and put on an asyncio.Queue.
A single apply loop drains that queue, so store mutations from the feed are
applied one by one in arrival order no matter how frames are delivered.

Correctness does not depend on the feed: upsert/remove are idempotent, so
duplicates and gaps (e.g. after a reconnect) converge on the next event.
"""

import asyncio
import contextlib
import json
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from ..core.errors import AuthError
from ..core.ports import Credential, FeedConnection, FeedConnector, TaskApi
from ..core.session import Session
from .task_models import FeedEvent, FeedEventKind, Task

logger = logging.getLogger(__name__)


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


_WIRE_KINDS = {
    "task_created": FeedEventKind.CREATED,
    "task_updated": FeedEventKind.UPDATED,
    "task_deleted": FeedEventKind.DELETED,
}


def parse_feed_message(raw: str | bytes) -> FeedEvent | None:
    """
    Decode one push-feed frame.

    Returns None for anything that is not a task notification. Malformed frames
    are logged and dropped; they never reach the store.
    """
    try:
        data: Any = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Dropping non-JSON feed frame: %.200r", raw)
        return None

    if not isinstance(data, dict):
        logger.warning("Dropping feed frame that is not an object: %.200r", raw)
        return None

    msg_type = data.get("type")

    if msg_type == "error":
        logger.warning("Feed error from server: %s", data.get("message"))
        return None

    kind = _WIRE_KINDS.get(msg_type) if isinstance(msg_type, str) else None
    if kind is None:
        logger.warning("Dropping feed frame with unknown type: %r", msg_type)
        return None

    try:
        if kind == FeedEventKind.DELETED:
            task_id = data.get("task_id")
            if isinstance(task_id, bool) or not isinstance(task_id, (str, int)) or task_id == "":
                raise ValueError(f"bad task_id {task_id!r}")
            return FeedEvent.deleted(task_id)

        task = Task.from_dict(data.get("task"))
    except ValueError as e:
        logger.warning("Dropping malformed %s frame: %s", msg_type, e)
        return None

    if kind == FeedEventKind.CREATED:
        return FeedEvent.created(task)
    return FeedEvent.updated(task)


class SyncChannel:
    """Bulk load + push feed for one session."""

    def __init__(
        self,
        session: Session,
        api: TaskApi,
        connector: FeedConnector,
    ) -> None:
        self._session = session
        self._api = api
        self._connector = connector
        self._inbox: asyncio.Queue[FeedEvent] = asyncio.Queue()
        self._conn: FeedConnection | None = None
        self._state = ConnectionState.DISCONNECTED
        self._state_listeners: list[Callable[[ConnectionState], None]] = []
        self._auth_error_listeners: list[Callable[[AuthError], None]] = []
        self._apply_task: asyncio.Task[None] | None = None
        self._feed_task: asyncio.Task[None] | None = None

    # ---- connection state ----

    @property
    def state(self) -> ConnectionState:
        return self._state

    def on_state_change(self, callback: Callable[[ConnectionState], None]) -> None:
        self._state_listeners.append(callback)

    def on_auth_error(self, callback: Callable[[AuthError], None]) -> None:
        """Called on the loop when the feed handshake rejects the credential."""
        self._auth_error_listeners.append(callback)

    def _set_state(self, new_state: ConnectionState) -> None:
        if new_state == self._state:
            return
        self._state = new_state
        logger.info("Push feed %s", new_state.value)
        for cb in list(self._state_listeners):
            try:
                cb(new_state)
            except Exception:
                logger.exception("Connection state listener failed")

    # ---- bulk load ----

    async def load_all(self) -> list[Task]:
        """
        Fetch the full task list and install it as canonical.

        AuthError / TransportError propagate; the store is untouched on failure.
        Feed events applied while the fetch is in flight are logically later
        and survive the reset.
        """
        mark = self._session.store.load_mark()
        tasks = await self._api.list_tasks(self._session.credential)
        if not self._session.active:
            logger.debug("Bulk load completed after session end; dropped (%d tasks)", len(tasks))
            return tasks
        self._session.store.replace_all(tasks, since=mark)
        return tasks

    # ---- event application ----

    def submit(self, event: FeedEvent) -> None:
        self._inbox.put_nowait(event)

    def apply_event(self, event: FeedEvent) -> None:
        if not self._session.active:
            logger.debug("Feed event after session end dropped: %s", event.kind.value)
            return

        store = self._session.store
        if event.kind == FeedEventKind.DELETED:
            if event.task_id is not None:
                store.remove(event.task_id)
            return

        if event.task is not None:
            store.upsert(event.task)

    async def run_apply_loop(self) -> None:
        """Single consumer of the inbox. Cancel to stop."""
        while True:
            event = await self._inbox.get()
            try:
                self.apply_event(event)
            except Exception:
                logger.exception("Failed to apply feed event %s", event.kind.value)
            finally:
                self._inbox.task_done()

    async def drain(self) -> None:
        """Wait until every submitted event has been applied."""
        await self._inbox.join()

    # ---- push feed ----

    async def run_feed(self) -> None:
        """
        Connect and pump frames into the inbox until the connection drops.

        Returns after the transition to DISCONNECTED; reconnecting is the
        caller's decision. AuthError from the handshake is re-raised.
        """
        try:
            conn = await self._connector.connect(self._session.credential)
        except AuthError:
            self._set_state(ConnectionState.DISCONNECTED)
            raise
        except Exception:
            logger.exception("Push feed connect failed")
            self._set_state(ConnectionState.DISCONNECTED)
            return

        self._conn = conn
        self._set_state(ConnectionState.CONNECTED)
        try:
            async for raw in conn:
                if not self._session.active:
                    break
                event = parse_feed_message(raw)
                if event is not None:
                    self.submit(event)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("Push feed connection lost", exc_info=True)
        finally:
            self._conn = None
            with contextlib.suppress(Exception):
                await conn.close()
            self._set_state(ConnectionState.DISCONNECTED)

    async def refresh_credential(self, credential: Credential) -> bool:
        """Hand a renewed credential to the open feed connection."""
        conn = self._conn
        if conn is None:
            return False
        await conn.send(json.dumps({"type": "refresh_jwt", "jwt": credential}))
        return True

    # ---- lifecycle ----

    def start(self) -> None:
        """Start apply loop and feed reader as tasks on the running loop."""
        if self._apply_task is None or self._apply_task.done():
            self._apply_task = asyncio.create_task(self.run_apply_loop())
        self.reconnect()

    def reconnect(self) -> None:
        if self._feed_task is not None and not self._feed_task.done():
            return
        self._feed_task = asyncio.create_task(self.run_feed())
        self._feed_task.add_done_callback(self._on_feed_exit)

    def _on_feed_exit(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        logger.error("Push feed stopped: %r", exc)
        if not isinstance(exc, AuthError):
            return
        for cb in list(self._auth_error_listeners):
            try:
                cb(exc)
            except Exception:
                logger.exception("Auth error listener failed")

    async def stop(self) -> None:
        for task in (self._feed_task, self._apply_task):
            if task is not None:
                task.cancel()
        for task in (self._feed_task, self._apply_task):
            if task is not None:
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await task
        self._feed_task = None
        self._apply_task = None
        self._set_state(ConnectionState.DISCONNECTED)
