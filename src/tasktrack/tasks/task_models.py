# src/tasktrack/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Mapping

TaskId = str | int


def _parse_id(raw: Any) -> TaskId:
    # bool is an int subclass; an id of True/False is never valid.
    if isinstance(raw, bool) or not isinstance(raw, (str, int)):
        raise ValueError(f"task id must be a string or integer, got {raw!r}")
    if isinstance(raw, str) and not raw.strip():
        raise ValueError("task id is empty")
    return raw


def parse_due(raw: Any) -> int | None:
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ValueError(f"due must be epoch seconds, got {raw!r}")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    raise ValueError(f"due must be epoch seconds, got {raw!r}")


@dataclass(frozen=True, slots=True)
class Task:
    id: TaskId
    category: str
    title: str
    text: str
    completed: bool = False
    due: int | None = None  # epoch seconds; None means "no due date"

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Task:
        """
        Parse a task object as sent by the server (bulk load, replies, push frames).

        Raises ValueError on anything that cannot become a well-formed Task.
        The server does not store titles, so a missing title becomes "".
        """
        if not isinstance(raw, Mapping):
            raise ValueError(f"task must be an object, got {type(raw).__name__}")

        category = raw.get("category")
        if not isinstance(category, str) or not category:
            raise ValueError("task category must be a non-empty string")

        title = raw.get("title", "")
        text = raw.get("text", "")
        if title is None:
            title = ""
        if not isinstance(title, str) or not isinstance(text, str):
            raise ValueError("task title/text must be strings")

        completed = raw.get("completed", False)
        if not isinstance(completed, bool):
            raise ValueError(f"task completed must be a boolean, got {completed!r}")

        return cls(
            id=_parse_id(raw.get("id")),
            category=category,
            title=title,
            text=text,
            completed=completed,
            due=parse_due(raw.get("due")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "title": self.title,
            "text": self.text,
            "completed": self.completed,
            "due": self.due,
        }


class FeedEventKind(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True, slots=True)
class FeedEvent:
    """
    One push-feed notification.

    CREATED/UPDATED carry the full task; DELETED carries only the id.
    """

    kind: FeedEventKind
    task: Task | None = None
    task_id: TaskId | None = None

    @classmethod
    def created(cls, task: Task) -> FeedEvent:
        return cls(kind=FeedEventKind.CREATED, task=task, task_id=task.id)

    @classmethod
    def updated(cls, task: Task) -> FeedEvent:
        return cls(kind=FeedEventKind.UPDATED, task=task, task_id=task.id)

    @classmethod
    def deleted(cls, task_id: TaskId) -> FeedEvent:
        return cls(kind=FeedEventKind.DELETED, task_id=task_id)


class StatusFilter(StrEnum):
    ALL = "all"
    COMPLETED = "completed"
    NOT_COMPLETED = "not_completed"


class SortKey(StrEnum):
    NONE = "none"
    DUE_ASC = "due_asc"
    DUE_DESC = "due_desc"


@dataclass(frozen=True, slots=True)
class FilterState:
    status: StatusFilter = StatusFilter.ALL
    category: str | None = None  # None means "all categories"
    sort: SortKey = SortKey.NONE
