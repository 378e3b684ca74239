"""Error taxonomy for todosync.

Stores raise these; the sync client catches them per phase, the web layer
maps them to HTTP status codes and the CLI maps them to exit codes.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "TodoSyncError",
    "StorageFailure",
    "RemoteUnreachable",
    "RemoteError",
    "NotFound",
]


class TodoSyncError(Exception):
    """Base class for all todosync errors."""


class StorageFailure(TodoSyncError):
    """Local persistence is unavailable or failed with an I/O error."""


class RemoteUnreachable(TodoSyncError):
    """The task server could not be reached (connection error or timeout)."""


class RemoteError(TodoSyncError):
    """The task server answered, but not with a usable success response."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class NotFound(TodoSyncError):
    """An operation referenced a task id that does not exist."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task {task_id} not found")
