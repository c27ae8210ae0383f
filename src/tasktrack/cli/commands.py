# src/tasktrack/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Coroutine
from datetime import datetime
from typing import Any, TypeVar, cast

from ..core.errors import AuthError, NotFoundError, TaskSyncError, TransportError, ValidationError
from ..core.session import Session
from ..core.state import AppState
from ..tasks import task_api
from ..tasks.task_dispatcher import MutationDispatcher
from ..tasks.task_models import Task, TaskId
from ..tasks.task_view import FilterAction, FilterActionType, list_categories

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

T = TypeVar("T")

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except Exception:
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return h2(state, args)
        except TaskSyncError as e:
            return _describe_failure(state, e)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- helpers ----


def _run(state: AppState, coro: Coroutine[Any, Any, T]) -> T:
    if state.runner is None:
        coro.close()
        raise RuntimeError("sync loop is not running")
    return state.runner.call(coro)


def _describe_failure(state: AppState, exc: TaskSyncError) -> str:
    if isinstance(exc, AuthError):
        if state.session is not None:
            try:
                _run(state, task_api.end_session(state, remote_logout=False))
            except Exception:
                logger.exception("Local session teardown failed")
        return f"Authentication failed: {exc}. Please /login again."
    if isinstance(exc, ValidationError):
        return f"Invalid input: {exc}"
    if isinstance(exc, NotFoundError):
        return f"Task not found (it may have been deleted elsewhere): {exc}"
    if isinstance(exc, TransportError):
        return f"Server unreachable, nothing was changed: {exc}"
    return f"Error: {exc}"


def _require_session(state: AppState) -> Session:
    if not state.logged_in or state.session is None or state.dispatcher is None:
        raise AuthError("not logged in")
    return state.session


def _require_dispatcher(state: AppState) -> MutationDispatcher:
    _require_session(state)
    dispatcher = state.dispatcher
    if dispatcher is None:
        raise AuthError("not logged in")
    return dispatcher


def parse_due_arg(raw: str) -> int | None:
    """Epoch seconds, 'YYYY-MM-DD', 'YYYY-MM-DD HH:MM' (local time) or 'none'."""
    s = raw.strip()
    if not s or s.lower() in {"none", "-", "null"}:
        return None
    if s.lstrip("-").isdigit():
        return int(s)
    for fmt in ("%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M", "%Y-%m-%d"):
        try:
            return int(datetime.strptime(s, fmt).astimezone().timestamp())
        except ValueError:
            continue
    raise ValidationError(f"cannot parse due date {raw!r}")


def parse_bool_arg(raw: str) -> bool:
    s = raw.strip().lower()
    if s in {"1", "true", "yes", "y", "on", "done"}:
        return True
    if s in {"0", "false", "no", "n", "off", "open"}:
        return False
    raise ValidationError(f"expected true/false, got {raw!r}")


def resolve_task_id(state: AppState, token: str) -> TaskId:
    """Exact id first, then integer id, then a unique id prefix."""
    store = _require_session(state).store
    if token in store:
        return token
    if token.isdigit() and int(token) in store:
        return int(token)

    matches = [t.id for t in store.snapshot() if str(t.id).startswith(token)]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise ValidationError(f"id prefix {token!r} is ambiguous")
    raise NotFoundError(f"no task with id {token!r}")


def _fmt_due(due: int | None) -> str:
    if due is None:
        return ""
    return " (due " + datetime.fromtimestamp(due).astimezone().strftime("%Y-%m-%d %H:%M") + ")"


def format_task(task: Task) -> str:
    mark = "x" if task.completed else " "
    title = f"{task.title}: " if task.title else ""
    return f"[{mark}] {str(task.id)[:8]:<8} {task.category:<12} {title}{task.text}{_fmt_due(task.due)}"


# ---- command handlers ----


def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not state.logged_in or state.session is None:
        return "Status: not logged in."
    session = state.session
    filters = session.filters.state
    feed = state.sync.state.value if state.sync is not None else "n/a"
    category = filters.category if filters.category is not None else "all"
    return (
        "Status:\n"
        f"  user: {session.display_name}\n"
        f"  tasks: {len(session.store)}\n"
        f"  push feed: {feed}\n"
        f"  filter: {filters.status.value} | category: {category} | sort: {filters.sort.value}"
    )


def _auth_command(state: AppState, args: list[str], emit: CommandEmitter | None, *, register: bool) -> str:
    if len(args) < 2:
        verb = "register" if register else "login"
        return f"Usage: /{verb} <username> <password>"
    username, password = args[0], " ".join(args[1:])

    def on_feed_state(new_state) -> None:
        if emit is not None:
            emit(f"[feed] {new_state.value}")

    def on_expired(reason: str) -> None:
        if emit is not None:
            emit(f"[session] Authentication failed: {reason}. Please /login again.")

    fn = task_api.register if register else task_api.login
    session = _run(
        state,
        fn(state, username, password, on_feed_state=on_feed_state, on_expired=on_expired),
    )
    return f"Welcome, {session.display_name}. {len(session.store)} task(s) loaded."


def cmd_login(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return _auth_command(state, args, emit, register=False)


def cmd_register(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return _auth_command(state, args, emit, register=True)


def cmd_logout(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not _run(state, task_api.end_session(state)):
        return "Not logged in."
    return "Logged out."


def cmd_reload(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    n = _run(state, task_api.reload_tasks(state))
    return f"Reloaded {n} task(s)."


def cmd_reconnect(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    _require_session(state)
    sync = state.sync
    if sync is None:
        return "Not logged in."

    async def _reconnect() -> None:
        sync.reconnect()

    _run(state, _reconnect())
    return "Reconnecting push feed..."


def cmd_list(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    session = _require_session(state)
    tasks = session.view.view(session.filters.state)
    if not tasks:
        return "No tasks found."
    lines = [f"Tasks ({len(tasks)}):"]
    lines.extend("  " + format_task(t) for t in tasks)
    return "\n".join(lines)


def cmd_categories(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    session = _require_session(state)
    cats = list_categories(session.store.snapshot())
    return "Categories: " + (", ".join(cats) if cats else "(none)")


def cmd_add(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    _require_session(state)
    parts = [p.strip() for p in " ".join(args).split("|")]
    if len(parts) < 3:
        return "Usage: /add <category> | <title> | <text> [| <due>]"
    category, title, text = parts[0], parts[1], parts[2]
    due = parse_due_arg(parts[3]) if len(parts) > 3 else None

    dispatcher = _require_dispatcher(state)
    created = _run(state, dispatcher.create(category, title, text, due))
    if created is None:
        return "Task submitted; it will appear when the server confirms it."
    return "Created " + format_task(created)


_EDIT_PARSERS: dict[str, Callable[[str], Any]] = {
    "category": str,
    "title": str,
    "text": str,
    "completed": parse_bool_arg,
    "due": parse_due_arg,
}


def cmd_edit(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    _require_session(state)
    if len(args) < 2:
        return "Usage: /edit <id> field=value [field=value ...]"
    task_id = resolve_task_id(state, args[0])

    # Values may contain spaces: "text=buy more milk" stays one field.
    fields: dict[str, Any] = {}
    current_key: str | None = None
    for token in args[1:]:
        key, sep, value = token.partition("=")
        if sep and key in _EDIT_PARSERS:
            current_key = key
            fields[key] = value
        elif current_key is not None:
            fields[current_key] = f"{fields[current_key]} {token}"
        else:
            raise ValidationError(f"expected field=value, got {token!r}")

    parsed = {k: _EDIT_PARSERS[k](v) for k, v in fields.items()}
    dispatcher = _require_dispatcher(state)
    updated = _run(state, dispatcher.update(task_id, parsed))
    return "Updated " + format_task(updated)


def cmd_done(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    _require_session(state)
    if not args:
        return "Usage: /done <id>"
    task_id = resolve_task_id(state, args[0])
    dispatcher = _require_dispatcher(state)
    updated = _run(state, dispatcher.toggle_completion(task_id))
    return "Updated " + format_task(updated)


def cmd_rm(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    _require_session(state)
    if not args:
        return "Usage: /rm <id>"
    task_id = resolve_task_id(state, args[0])
    dispatcher = _require_dispatcher(state)
    existed = _run(state, dispatcher.delete(task_id))
    return f"Deleted {task_id}." if existed else f"Task {task_id} was already deleted."


def _dispatch_filter(state: AppState, action: FilterAction) -> str:
    session = _require_session(state)
    new_state = session.filters.dispatch(action)
    category = new_state.category if new_state.category is not None else "all"
    return f"View: {new_state.status.value} | category: {category} | sort: {new_state.sort.value}"


def cmd_filter(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /filter all|completed|not_completed"
    return _dispatch_filter(state, FilterAction(FilterActionType.SET_FILTER, args[0].lower()))


def cmd_category(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /category <name>|all"
    name = " ".join(args)
    payload = None if name.lower() == "all" else name
    return _dispatch_filter(state, FilterAction(FilterActionType.SET_CATEGORY_FILTER, payload))


def cmd_sort(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /sort none|due_asc|due_desc"
    return _dispatch_filter(state, FilterAction(FilterActionType.SET_SORT, args[0].lower()))


registry.register("help", cmd_help, "show this help", aliases=["h", "?"])
registry.register("status", cmd_status, "session, feed and view status")
registry.register("login", cmd_login, "log in: /login <username> <password>")
registry.register("register", cmd_register, "create an account: /register <username> <password>")
registry.register("logout", cmd_logout, "end the session")
registry.register("reload", cmd_reload, "re-run the bulk load")
registry.register("reconnect", cmd_reconnect, "reopen the push feed after a disconnect")
registry.register("list", cmd_list, "show tasks with the current filters", aliases=["ls"])
registry.register("categories", cmd_categories, "list known categories")
registry.register("add", cmd_add, "create: /add <category> | <title> | <text> [| <due>]")
registry.register("edit", cmd_edit, "update: /edit <id> field=value ...")
registry.register("done", cmd_done, "toggle completion: /done <id>", aliases=["toggle"])
registry.register("rm", cmd_rm, "delete: /rm <id>", aliases=["delete"])
registry.register("filter", cmd_filter, "status filter: all|completed|not_completed")
registry.register("category", cmd_category, "category filter: <name>|all")
registry.register("sort", cmd_sort, "sort: none|due_asc|due_desc")
