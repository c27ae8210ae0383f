# src/tasktrack/tasks/task_api.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from ..core.errors import AuthError, TransportError
from ..core.ports import AuthResult
from ..core.session import Session
from ..core.state import AppState
from .sync_channel import ConnectionState, SyncChannel
from .task_dispatcher import MutationDispatcher

logger = logging.getLogger(__name__)

# Strong references to fire-and-forget teardown tasks.
_background: set[asyncio.Task[None]] = set()


async def start_session(
    state: AppState,
    auth: AuthResult,
    *,
    on_feed_state: Callable[[ConnectionState], None] | None = None,
    on_expired: Callable[[str], None] | None = None,
) -> Session:
    """
    Build the session-scoped objects, bulk-load, then start the push feed.

    AuthError from the bulk load ends the new session and propagates.
    A TransportError leaves the session up with an empty store; the feed
    still starts and /reload can retry the load.

    A credential rejected later by the push feed ends the session the same
    way; `on_expired` receives the reason.

    A previous session is logged out first (best-effort).
    """
    await end_session(state)

    session = Session(credential=auth.credential, display_name=auth.display_name)
    sync = SyncChannel(session, state.task_api, state.feed_connector)
    if on_feed_state is not None:
        sync.on_state_change(on_feed_state)

    def _feed_rejected(exc: AuthError) -> None:
        task = asyncio.create_task(_expire_session(state, session, str(exc), on_expired))
        _background.add(task)
        task.add_done_callback(_background.discard)

    sync.on_auth_error(_feed_rejected)

    state.session = session
    state.sync = sync
    state.dispatcher = MutationDispatcher(session, state.task_api)

    try:
        tasks = await sync.load_all()
        logger.info("Session started for %s with %d tasks", auth.display_name, len(tasks))
    except AuthError:
        await end_session(state, remote_logout=False)
        raise
    except TransportError:
        logger.warning("Bulk load failed for %s; starting with an empty list", auth.display_name, exc_info=True)

    sync.start()
    return session


async def login(state: AppState, username: str, password: str, **kwargs) -> Session:
    auth = await state.auth_api.login(username, password)
    return await start_session(state, auth, **kwargs)


async def register(state: AppState, username: str, password: str, **kwargs) -> Session:
    auth = await state.auth_api.register(username, password)
    return await start_session(state, auth, **kwargs)


async def reload_tasks(state: AppState) -> int:
    if state.sync is None or not state.logged_in:
        raise AuthError("not logged in")
    tasks = await state.sync.load_all()
    return len(tasks)


async def end_session(state: AppState, *, remote_logout: bool = True) -> bool:
    """
    Tear down the current session (if any).

    Local teardown happens first and always; the remote logout is best-effort.
    Returns False if there was no session.
    """
    session, sync = state.session, state.sync
    state.session = None
    state.sync = None
    state.dispatcher = None

    if session is None:
        return False

    session.end()
    if sync is not None:
        await sync.stop()

    if remote_logout:
        ok = await state.auth_api.logout(session.credential)
        if not ok:
            logger.info("Remote logout did not succeed; local session is gone anyway")
    return True


async def _expire_session(
    state: AppState,
    session: Session,
    reason: str,
    on_expired: Callable[[str], None] | None,
) -> None:
    if state.session is not session:
        return
    logger.warning("Credential rejected by the push feed (%s); ending session", reason)
    await end_session(state, remote_logout=False)
    if on_expired is not None:
        try:
            on_expired(reason)
        except Exception:
            logger.exception("Session expiry listener failed")
