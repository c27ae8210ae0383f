# src/tasktrack/tasks/task_dispatcher.py

from __future__ import annotations

"""
Mutation dispatcher.

Turns user actions into remote calls and applies the confirmed result to the
session's TaskStore. Nothing is applied before the server accepts the change,
and nothing at all when it does not.
"""

import logging
from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from ..core.errors import NotFoundError, ValidationError
from ..core.ports import TaskApi
from ..core.session import Session
from .task_models import Task, TaskId, parse_due

logger = logging.getLogger(__name__)

# Fields a caller may change through update(); the id is server-owned.
UPDATABLE_FIELDS = frozenset({"category", "title", "text", "completed", "due"})

# Placeholder id for a task that the server has not created yet.
_UNASSIGNED_ID = "__new__"


def validate_task(task: Task) -> None:
    """Category and text are required; everything else has a usable default."""
    if not isinstance(task.category, str) or not task.category.strip():
        raise ValidationError("category is required")
    if not isinstance(task.text, str) or not task.text.strip():
        raise ValidationError("text is required")
    if not isinstance(task.title, str):
        raise ValidationError("title must be a string")
    if not isinstance(task.completed, bool):
        raise ValidationError("completed must be a boolean")
    try:
        parse_due(task.due)
    except ValueError as e:
        raise ValidationError(str(e)) from e


class MutationDispatcher:
    """Create / update / toggle / delete, confirmed by the server before applying."""

    def __init__(self, session: Session, api: TaskApi) -> None:
        self._session = session
        self._api = api

    def _apply(self, what: str, task: Task) -> None:
        if not self._session.active:
            logger.debug("%s completed after session end; dropped id=%s", what, task.id)
            return
        self._session.store.upsert(task)

    async def create(
        self,
        category: str,
        title: str,
        text: str,
        due: int | None = None,
    ) -> Task | None:
        """
        Create a task.

        Returns the canonical task (with its server-assigned id) when the server
        sends it back. Returns None when the reply has no body; the task then
        arrives through the push feed.
        """
        draft = Task(
            id=_UNASSIGNED_ID,
            category=category,
            title=title if title is not None else "",
            text=text,
            completed=False,
            due=due,
        )
        validate_task(draft)

        created = await self._api.create_task(self._session.credential, draft)
        if created is None:
            logger.info("Task create accepted; waiting for push (category=%s)", category)
            return None

        self._apply("create", created)
        logger.info("Task created id=%s category=%s", created.id, created.category)
        return created

    async def update(self, task_id: TaskId, fields: Mapping[str, Any]) -> Task:
        """
        Merge `fields` into the current record and send the complete document.

        Raises NotFoundError without a remote call if the task is not in the store.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"unknown task fields: {', '.join(sorted(unknown))}")

        current = self._session.store.get(task_id)
        if current is None:
            raise NotFoundError(f"task {task_id} is not in the current session")

        intended = replace(current, **dict(fields))
        validate_task(intended)

        confirmed = await self._api.update_task(self._session.credential, intended)
        if confirmed is None:
            confirmed = intended

        self._apply("update", confirmed)
        logger.info("Task updated id=%s", confirmed.id)
        return confirmed

    async def toggle_completion(self, task_id: TaskId) -> Task:
        current = self._session.store.get(task_id)
        if current is None:
            raise NotFoundError(f"task {task_id} is not in the current session")
        return await self.update(task_id, {"completed": not current.completed})

    async def delete(self, task_id: TaskId) -> bool:
        """
        Delete a task. Returns False if the server no longer had it.

        A 404 from the server means someone else deleted it first; the local
        copy is dropped either way.
        """
        existed = True
        try:
            await self._api.delete_task(self._session.credential, task_id)
        except NotFoundError:
            logger.info("Task %s already gone on the server", task_id)
            existed = False

        if not self._session.active:
            logger.debug("delete completed after session end; dropped id=%s", task_id)
            return existed

        self._session.store.remove(task_id)
        logger.info("Task deleted id=%s", task_id)
        return existed
