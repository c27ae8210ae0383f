# src/tasktrack/core/errors.py

from __future__ import annotations

"""
Typed failures surfaced by the sync engine.

Store operations never raise; everything here originates in the dispatcher's
input checks or in the HTTP / push-feed connectors.
"""


class TaskSyncError(Exception):
    """Base class for all tasktrack failures."""


class ValidationError(TaskSyncError):
    """Malformed user input, rejected before any remote call (or by the server)."""


class AuthError(TaskSyncError):
    """Credential invalid, expired or revoked. The caller must re-authenticate."""


class TransportError(TaskSyncError):
    """Network or server failure. Transient; this client does not retry."""


class NotFoundError(TaskSyncError):
    """The targeted task no longer exists (usually a race with a concurrent delete)."""
