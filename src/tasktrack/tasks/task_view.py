# src/tasktrack/tasks/task_view.py

from __future__ import annotations

"""
View derivation.

derive_view() is a pure function of (snapshot, filter state). FilterStore owns
the filter state the presentation layer mutates through dispatch(); ViewCache
memoises derivations keyed by the store version and the filter state.
"""

import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any

from ..core.errors import ValidationError
from .task_models import FilterState, SortKey, StatusFilter, Task
from .task_store import TaskStore

logger = logging.getLogger(__name__)


def _passes_status(task: Task, status: StatusFilter) -> bool:
    if status == StatusFilter.COMPLETED:
        return task.completed is True
    if status == StatusFilter.NOT_COMPLETED:
        return task.completed is False
    return True


def _passes_category(task: Task, category: str | None) -> bool:
    return category is None or task.category == category


def derive_view(snapshot: Sequence[Task], filters: FilterState) -> tuple[Task, ...]:
    """
    Filter and order a snapshot for display.

    - status and category filters are combined with AND
    - SortKey.NONE keeps snapshot order
    - due sorts are stable and always put undated tasks last, in both directions
    """
    visible = [
        t
        for t in snapshot
        if _passes_status(t, filters.status) and _passes_category(t, filters.category)
    ]

    if filters.sort == SortKey.NONE:
        return tuple(visible)

    dated = [t for t in visible if t.due is not None]
    undated = [t for t in visible if t.due is None]
    # sorted() is stable; reverse=True keeps ties in original order too.
    dated.sort(key=lambda t: t.due or 0, reverse=filters.sort == SortKey.DUE_DESC)
    return tuple(dated + undated)


def list_categories(snapshot: Iterable[Task]) -> list[str]:
    """Distinct categories, sorted, for the category selector."""
    return sorted({t.category for t in snapshot})


class FilterActionType(StrEnum):
    SET_FILTER = "set_filter"
    SET_CATEGORY_FILTER = "set_category_filter"
    SET_SORT = "set_sort"


@dataclass(frozen=True, slots=True)
class FilterAction:
    type: FilterActionType | str
    payload: Any = None


def reduce_filters(state: FilterState, action: FilterAction) -> FilterState:
    """Return the next filter state. Unknown action types leave state unchanged."""
    kind = action.type
    try:
        if kind == FilterActionType.SET_FILTER:
            return replace(state, status=StatusFilter(action.payload))
        if kind == FilterActionType.SET_SORT:
            return replace(state, sort=SortKey(action.payload))
    except ValueError as e:
        raise ValidationError(f"invalid payload for {kind}: {action.payload!r}") from e

    if kind == FilterActionType.SET_CATEGORY_FILTER:
        payload = action.payload
        if payload is None:
            return replace(state, category=None)
        if not isinstance(payload, str) or not payload:
            raise ValidationError(f"category filter must be a non-empty string or None, got {payload!r}")
        return replace(state, category=payload)

    logger.warning("Unknown filter action type: %r", kind)
    return state


class FilterStore:
    """Owns the FilterState for one session. Never touches the task collection."""

    def __init__(self, initial: FilterState | None = None) -> None:
        self._lock = threading.Lock()
        self._state = initial or FilterState()
        self._listeners: list[Callable[[FilterState], None]] = []

    @property
    def state(self) -> FilterState:
        with self._lock:
            return self._state

    def dispatch(self, action: FilterAction) -> FilterState:
        with self._lock:
            new_state = reduce_filters(self._state, action)
            changed = new_state != self._state
            self._state = new_state
            listeners = list(self._listeners) if changed else []

        for listener in listeners:
            try:
                listener(new_state)
            except Exception:
                logger.exception("FilterStore listener failed")
        return new_state

    def subscribe(self, on_change: Callable[[FilterState], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(on_change)

        def unsubscribe() -> None:
            with self._lock:
                if on_change in self._listeners:
                    self._listeners.remove(on_change)

        return unsubscribe


class ViewCache:
    """
    Memoised derive_view for a store.

    The key is (store.version, filter state); the version and the snapshot are
    read together so a mutation between the two can never produce a stale hit.
    """

    def __init__(self, store: TaskStore) -> None:
        self._store = store
        self._key: tuple[int, FilterState] | None = None
        self._value: tuple[Task, ...] = ()

    def view(self, filters: FilterState) -> tuple[Task, ...]:
        version, snap = self._store.versioned_snapshot()
        key = (version, filters)
        if key == self._key:
            return self._value

        value = derive_view(snap, filters)
        self._key = key
        self._value = value
        return value
