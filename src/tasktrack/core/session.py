# src/tasktrack/core/session.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..tasks.task_store import TaskStore
from ..tasks.task_view import FilterStore, ViewCache
from .ports import Credential

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """
    One authenticated session: credential plus the state it owns.

    Built at login, ended at logout (or on AuthError). Anything that completes
    after end() must check `active` and drop its result.
    """

    credential: Credential
    display_name: str
    store: TaskStore = field(default_factory=TaskStore)
    filters: FilterStore = field(default_factory=FilterStore)
    view: ViewCache = field(init=False)
    active: bool = True

    def __post_init__(self) -> None:
        self.view = ViewCache(self.store)

    def end(self) -> None:
        if not self.active:
            return
        self.active = False
        self.store.close()
        logger.info("Session ended for %s", self.display_name)
