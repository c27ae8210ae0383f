# src/tasktrack/tasks/task_store.py

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable

from .task_models import Task, TaskId

logger = logging.getLogger(__name__)

ChangeListener = Callable[[tuple[Task, ...]], None]


class TaskStore:
    """
    In-memory task collection for one authenticated session.

    Semantics:
    - replace_all: hard reset after a bulk load
    - upsert: insert or overwrite the whole record (last writer wins)
    - remove: delete if present, absent ids are a no-op
    - snapshot: immutable tuple in collection order

    Deleted ids are remembered until the next replace_all. Ids are never
    reused, so an upsert for a deleted id can only be a stale push that was
    delivered out of order; it is ignored.

    A bulk load can overlap live feed events. load_mark() taken before the
    fetch lets replace_all keep every change applied after the mark: ids
    removed meanwhile stay removed and records upserted meanwhile win over
    the fetched copy.

    Thread-safety:
    - every mutation and snapshot holds one RLock, so the console thread never
      sees a half-applied change made on the sync loop thread
    - listeners run after the lock is released
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tasks: dict[TaskId, Task] = {}
        self._deleted: set[TaskId] = set()
        # id -> change sequence number of its last upsert/remove
        self._touched: dict[TaskId, int] = {}
        self._seq = 0
        self._listeners: list[ChangeListener] = []
        self._version = 0
        self._closed = False

    # ---- read API ----

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> tuple[Task, ...]:
        with self._lock:
            return tuple(self._tasks.values())

    def versioned_snapshot(self) -> tuple[int, tuple[Task, ...]]:
        """Version and snapshot read under one lock acquisition."""
        with self._lock:
            return self._version, tuple(self._tasks.values())

    def get(self, task_id: TaskId) -> Task | None:
        with self._lock:
            return self._tasks.get(task_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        with self._lock:
            return task_id in self._tasks

    # ---- mutations ----

    def load_mark(self) -> int:
        """Position in the change sequence; pass it to replace_all(since=...)."""
        with self._lock:
            return self._seq

    def _touch(self, task_id: TaskId) -> None:
        self._seq += 1
        self._touched[task_id] = self._seq

    def replace_all(self, tasks: Iterable[Task], *, since: int | None = None) -> None:
        """
        Install a fetched collection.

        With `since` (a load_mark() taken before the fetch), changes applied
        after the mark override the fetched data. Without it, this is a plain
        hard reset.
        """
        with self._lock:
            if self._closed:
                logger.debug("replace_all after close ignored")
                return
            fetched = {t.id: t for t in tasks}

            later = {} if since is None else {i: s for i, s in self._touched.items() if s > since}
            kept_deleted: set[TaskId] = set()
            for task_id in later:
                if task_id in self._deleted:
                    fetched.pop(task_id, None)
                    kept_deleted.add(task_id)
                elif task_id in self._tasks:
                    fetched[task_id] = self._tasks[task_id]
            if later:
                logger.debug("Bulk load merged %d change(s) applied during the fetch", len(later))

            self._tasks = fetched
            self._deleted = kept_deleted
            self._touched = later
            self._version += 1
            snap = tuple(self._tasks.values())
        logger.info("TaskStore loaded total=%d", len(snap))
        self._notify(snap)

    def upsert(self, task: Task) -> bool:
        with self._lock:
            if self._closed:
                logger.debug("upsert after close ignored id=%s", task.id)
                return False
            if task.id in self._deleted:
                logger.debug("upsert for deleted id=%s ignored (stale event)", task.id)
                return False
            if self._tasks.get(task.id) == task:
                # Duplicate delivery: nothing changes, no version bump.
                return True
            self._tasks[task.id] = task
            self._touch(task.id)
            self._version += 1
            snap = tuple(self._tasks.values())
        logger.debug("Task upserted id=%s", task.id)
        self._notify(snap)
        return True

    def remove(self, task_id: TaskId) -> bool:
        with self._lock:
            if self._closed:
                logger.debug("remove after close ignored id=%s", task_id)
                return False
            self._deleted.add(task_id)
            self._touch(task_id)
            if self._tasks.pop(task_id, None) is None:
                return False
            self._version += 1
            snap = tuple(self._tasks.values())
        logger.debug("Task removed id=%s", task_id)
        self._notify(snap)
        return True

    def close(self) -> None:
        """Tear down at logout. Later mutations become no-ops."""
        with self._lock:
            self._closed = True
            self._tasks = {}
            self._deleted.clear()
            self._touched.clear()
            self._listeners = []
            self._version += 1

    # ---- change notification ----

    def subscribe(self, on_change: ChangeListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(on_change)

        def unsubscribe() -> None:
            with self._lock:
                if on_change in self._listeners:
                    self._listeners.remove(on_change)

        return unsubscribe

    def _notify(self, snap: tuple[Task, ...]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snap)
            except Exception:
                logger.exception("TaskStore listener failed")
