# src/tasktrack/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..tasks.sync_channel import SyncChannel
from ..tasks.task_dispatcher import MutationDispatcher
from .ports import AuthApi, FeedConnector, TaskApi
from .session import Session

if TYPE_CHECKING:
    from ..connectors.sync_runner import SyncBackgroundRunner


@dataclass
class AppState:
    """
    Composition holder shared by connectors and commands.

    Collaborators are built once in bootstrap. The session-scoped objects
    (session, sync, dispatcher) are replaced on every login and cleared at logout.
    """

    # Store Settings on the state for easy access in other modules.
    settings: Any

    auth_api: AuthApi
    task_api: TaskApi
    feed_connector: FeedConnector

    runner: SyncBackgroundRunner | None = None

    session: Session | None = None
    sync: SyncChannel | None = None
    dispatcher: MutationDispatcher | None = None

    @property
    def logged_in(self) -> bool:
        return self.session is not None and self.session.active
