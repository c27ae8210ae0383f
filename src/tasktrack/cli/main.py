# src/tasktrack/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, starts the sync loop thread, optionally
logs in from settings, then runs the console REPL in the main thread.
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import close_connectors, create_initial_state
from ..cli.commands import registry as command_registry
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..connectors.sync_runner import start_sync_in_background
from ..logging_setup import setup_logging
from ..tasks import task_api

logger = logging.getLogger(__name__)


def _shutdown(state) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    runner = state.runner
    if runner is None:
        return

    try:
        runner.call(task_api.end_session(state), timeout=10.0)
    except Exception:
        logger.exception("Failed to end session.")

    try:
        runner.call(close_connectors(state), timeout=5.0)
    except Exception:
        logger.debug("Connector close failed.", exc_info=True)

    runner.stop()
    runner.join(timeout=10.0)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    state = create_initial_state(settings=settings)
    state.runner = start_sync_in_background()
    if state.runner is None:
        logger.error("Sync loop failed to start; exiting.")
        return

    if settings.username and settings.password:
        reply = command_registry.handle(state, f"/login {settings.username} {settings.password}")
        logger.info("Auto-login: %s", reply)

    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGTERM, _handle_signal)
    except Exception:
        # Some platforms may not support SIGTERM.
        pass

    try:
        if settings.console_enabled:
            run_console_loop(state)
            stop_main.set()
        else:
            logger.info("Console disabled. Keeping the session in sync. Press Ctrl+C to stop.")
            try:
                stop_main.wait()
            except KeyboardInterrupt:
                pass
    finally:
        _shutdown(state)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
