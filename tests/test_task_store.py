# tests/test_task_store.py

from __future__ import annotations

import random
import threading

from tasktrack.tasks.task_store import TaskStore

from .fakes import make_task


def test_replace_all_is_a_hard_reset() -> None:
    store = TaskStore()
    store.upsert(make_task(99))
    store.remove(98)

    t1, t2 = make_task(1), make_task(2)
    store.replace_all([t1, t2])

    assert store.snapshot() == (t1, t2)


def test_upsert_inserts_then_overwrites_whole_record_in_place() -> None:
    store = TaskStore()
    store.replace_all([make_task(1), make_task(2)])

    newer = make_task(1, title="renamed", completed=True, due=500)
    assert store.upsert(newer) is True

    snap = store.snapshot()
    assert [t.id for t in snap] == [1, 2]
    assert snap[0] == newer


def test_remove_absent_id_is_a_no_op() -> None:
    store = TaskStore()
    store.replace_all([make_task(1)])
    before = store.snapshot()
    version = store.version

    assert store.remove(42) is False
    assert store.snapshot() == before
    assert store.version == version


def test_identifiers_stay_unique_under_random_operations() -> None:
    rng = random.Random(1234)
    store = TaskStore()
    for _ in range(500):
        task_id = rng.randint(1, 20)
        if rng.random() < 0.7:
            store.upsert(make_task(task_id, title=str(rng.random())))
        else:
            store.remove(task_id)
        ids = [t.id for t in store.snapshot()]
        assert len(ids) == len(set(ids))


def test_applying_same_update_twice_is_idempotent() -> None:
    store = TaskStore()
    store.replace_all([make_task(1)])
    update = make_task(1, completed=True)

    store.upsert(update)
    once = store.snapshot()
    version = store.version
    store.upsert(update)

    assert store.snapshot() == once
    assert store.version == version


def test_stale_update_after_delete_does_not_resurrect() -> None:
    store = TaskStore()
    store.replace_all([make_task(1), make_task(2)])

    store.remove(1)
    assert store.upsert(make_task(1, title="stale")) is False

    assert [t.id for t in store.snapshot()] == [2]


def test_snapshot_is_detached_from_live_state() -> None:
    store = TaskStore()
    store.replace_all([make_task(1)])
    snap = store.snapshot()

    store.upsert(make_task(2))
    store.remove(1)

    assert [t.id for t in snap] == [1]
    assert isinstance(snap, tuple)


def test_listeners_receive_snapshots_and_failures_are_isolated() -> None:
    store = TaskStore()
    seen: list[tuple] = []

    def broken(_snap) -> None:
        raise RuntimeError("boom")

    store.subscribe(broken)
    unsubscribe = store.subscribe(seen.append)

    store.upsert(make_task(1))
    store.remove(1)
    unsubscribe()
    store.upsert(make_task(2))

    assert [len(s) for s in seen] == [1, 0]
    assert len(store) == 1


def test_mutations_after_close_are_ignored() -> None:
    store = TaskStore()
    store.replace_all([make_task(1)])
    store.close()

    assert store.upsert(make_task(2)) is False
    assert store.remove(1) is False
    store.replace_all([make_task(3)])

    assert store.snapshot() == ()
    assert store.closed


def test_readers_never_see_partial_state_across_threads() -> None:
    store = TaskStore()
    store.replace_all([make_task(i) for i in range(50)])
    errors: list[str] = []
    stop = threading.Event()

    def reader() -> None:
        while not stop.is_set():
            ids = [t.id for t in store.snapshot()]
            if len(ids) != len(set(ids)):
                errors.append("duplicate id in snapshot")

    th = threading.Thread(target=reader)
    th.start()
    try:
        for i in range(2000):
            store.upsert(make_task(i % 80, title=str(i)))
            if i % 3 == 0:
                store.remove((i * 7) % 80)
    finally:
        stop.set()
        th.join()

    assert errors == []


def test_replace_all_since_mark_keeps_later_changes() -> None:
    store = TaskStore()
    store.replace_all([make_task(1), make_task(2)])
    store.remove(1)

    mark = store.load_mark()
    store.remove(2)
    store.upsert(make_task(3))

    store.replace_all([make_task(1), make_task(2), make_task(4)], since=mark)

    # 1 was deleted before the mark, so the fetched copy is authoritative.
    assert [t.id for t in store.snapshot()] == [1, 4, 3]
    assert store.upsert(make_task(2)) is False
