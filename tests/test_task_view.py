# tests/test_task_view.py

from __future__ import annotations

import pytest

from tasktrack.core.errors import ValidationError
from tasktrack.tasks.task_models import FilterState, SortKey, StatusFilter
from tasktrack.tasks.task_store import TaskStore
from tasktrack.tasks.task_view import (
    FilterAction,
    FilterActionType,
    FilterStore,
    ViewCache,
    derive_view,
    list_categories,
)

from .fakes import make_task


def _ids(tasks) -> list:
    return [t.id for t in tasks]


def test_not_completed_sorted_by_due_ascending() -> None:
    snapshot = (
        make_task(1, completed=False, due=100),
        make_task(2, completed=True, due=None),
        make_task(3, completed=False, due=50),
    )
    view = derive_view(snapshot, FilterState(status=StatusFilter.NOT_COMPLETED, sort=SortKey.DUE_ASC))
    assert _ids(view) == [3, 1]


def test_status_filters() -> None:
    snapshot = (make_task(1, completed=True), make_task(2), make_task(3, completed=True))
    assert _ids(derive_view(snapshot, FilterState())) == [1, 2, 3]
    assert _ids(derive_view(snapshot, FilterState(status=StatusFilter.COMPLETED))) == [1, 3]
    assert _ids(derive_view(snapshot, FilterState(status=StatusFilter.NOT_COMPLETED))) == [2]


def test_category_filter_none_and_exact_match() -> None:
    snapshot = (
        make_task(1, category="work"),
        make_task(2, category="home"),
        make_task(3, category="Work"),
    )
    assert _ids(derive_view(snapshot, FilterState(category=None))) == [1, 2, 3]
    assert _ids(derive_view(snapshot, FilterState(category="work"))) == [1]


def test_filters_are_conjunctive() -> None:
    snapshot = (
        make_task(1, category="work", completed=True),
        make_task(2, category="work"),
        make_task(3, category="home", completed=True),
    )
    view = derive_view(snapshot, FilterState(status=StatusFilter.COMPLETED, category="work"))
    assert _ids(view) == [1]


def test_undated_tasks_go_last_in_both_directions() -> None:
    snapshot = (
        make_task(1, due=None),
        make_task(2, due=300),
        make_task(3, due=100),
        make_task(4, due=None),
        make_task(5, due=200),
    )
    assert _ids(derive_view(snapshot, FilterState(sort=SortKey.DUE_ASC))) == [3, 5, 2, 1, 4]
    assert _ids(derive_view(snapshot, FilterState(sort=SortKey.DUE_DESC))) == [2, 5, 3, 1, 4]


def test_sort_is_stable_for_equal_due() -> None:
    snapshot = (make_task("b", due=10), make_task("a", due=10), make_task("c", due=5))
    assert _ids(derive_view(snapshot, FilterState(sort=SortKey.DUE_ASC))) == ["c", "b", "a"]
    assert _ids(derive_view(snapshot, FilterState(sort=SortKey.DUE_DESC))) == ["b", "a", "c"]


def test_sort_none_preserves_snapshot_order() -> None:
    snapshot = (make_task(3, due=1), make_task(1, due=3), make_task(2))
    assert _ids(derive_view(snapshot, FilterState())) == [3, 1, 2]


def test_list_categories_sorted_distinct() -> None:
    snapshot = (make_task(1, category="work"), make_task(2, category="home"), make_task(3, category="work"))
    assert list_categories(snapshot) == ["home", "work"]


def test_filter_store_dispatch() -> None:
    filters = FilterStore()
    seen: list[FilterState] = []
    filters.subscribe(seen.append)

    filters.dispatch(FilterAction(FilterActionType.SET_FILTER, "completed"))
    filters.dispatch(FilterAction(FilterActionType.SET_CATEGORY_FILTER, "work"))
    filters.dispatch(FilterAction(FilterActionType.SET_SORT, "due_desc"))
    filters.dispatch(FilterAction(FilterActionType.SET_SORT, "due_desc"))  # unchanged, no notify
    filters.dispatch(FilterAction("something_else", 1))

    assert filters.state == FilterState(StatusFilter.COMPLETED, "work", SortKey.DUE_DESC)
    assert len(seen) == 3

    filters.dispatch(FilterAction(FilterActionType.SET_CATEGORY_FILTER, None))
    assert filters.state.category is None


def test_filter_store_rejects_bad_payloads() -> None:
    filters = FilterStore()
    with pytest.raises(ValidationError):
        filters.dispatch(FilterAction(FilterActionType.SET_FILTER, "done"))
    with pytest.raises(ValidationError):
        filters.dispatch(FilterAction(FilterActionType.SET_CATEGORY_FILTER, ""))
    assert filters.state == FilterState()


def test_view_cache_never_returns_stale_results() -> None:
    store = TaskStore()
    store.replace_all([make_task(1), make_task(2, completed=True)])
    cache = ViewCache(store)
    filters = FilterState(status=StatusFilter.NOT_COMPLETED)

    first = cache.view(filters)
    assert _ids(first) == [1]
    assert cache.view(filters) is first

    store.upsert(make_task(3))
    assert _ids(cache.view(filters)) == [1, 3]

    assert _ids(cache.view(FilterState(status=StatusFilter.COMPLETED))) == [2]
