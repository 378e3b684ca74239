"""Local task storage for todosync.

This module provides the device-local task store using SQLite. The sync
client relies on list_all(), upsert() and the delete tombstones; the other
methods are the user-facing operations of the client, which stamp
updatedAt and clear the synced flag on every change.

Every public method runs in its own transaction and raises StorageFailure
if SQLite fails.

CRITICAL: This module must have NO web or CLI dependencies.
"""

from __future__ import annotations

import functools
import logging
import sqlite3
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

from .errors import StorageFailure
from .models import Task, TaskPatch
from .timestamp_utils import next_timestamp, now_iso
from .validation import validate_status_filter, validate_task_id

logger = logging.getLogger(__name__)

__all__ = ["Database"]

SCHEMA = """
CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    isCompleted INTEGER NOT NULL,
    createdAt TEXT NOT NULL,
    updatedAt TEXT NOT NULL,
    isSynced INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_tasks_is_synced ON tasks(isSynced);
CREATE TABLE IF NOT EXISTS deleted_tasks (
    id TEXT PRIMARY KEY,
    deletedAt TEXT NOT NULL
);
"""


def storage_operation(func: Callable) -> Callable:
    """Decorator serializing access and converting sqlite3 errors.

    Wraps the call in the connection lock and re-raises any sqlite3.Error
    as StorageFailure.
    """
    @functools.wraps(func)
    def wrapper(self: "Database", *args: Any, **kwargs: Any) -> Any:
        with self._lock:
            if self.conn is None:
                raise StorageFailure("Database is closed")
            try:
                return func(self, *args, **kwargs)
            except sqlite3.Error as e:
                logger.error(f"Storage error in {func.__name__}: {e}")
                raise StorageFailure(f"{func.__name__} failed: {e}") from e
    return wrapper


def _row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        id=row["id"],
        title=row["title"],
        description=row["description"] or "",
        is_completed=bool(row["isCompleted"]),
        created_at=row["createdAt"],
        updated_at=row["updatedAt"],
        is_synced=bool(row["isSynced"]),
    )


class Database:
    """SQLite-backed local task store.

    Attributes:
        db_path: Path of the database file, or ':memory:'
        conn: The open sqlite3 connection (None once closed)
    """

    def __init__(self, db_path: Union[Path, str]) -> None:
        """Open (and create if needed) the task database.

        Args:
            db_path: Path to the SQLite database file, or ':memory:' for in-memory

        Raises:
            StorageFailure: If the database cannot be opened or initialized
        """
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self.conn: Optional[sqlite3.Connection] = sqlite3.connect(
                self.db_path, check_same_thread=False
            )
            self.conn.row_factory = sqlite3.Row
            with self.conn:
                self.conn.executescript(SCHEMA)
        except (sqlite3.Error, OSError) as e:
            raise StorageFailure(f"Cannot open database {self.db_path}: {e}") from e
        logger.info(f"Opened task database at {self.db_path}")

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self.conn is not None:
                self.conn.close()
                self.conn = None

    # ===== Sync client contract =====

    @storage_operation
    def list_all(self) -> List[Task]:
        """Get every local task, in unspecified order."""
        rows = self.conn.execute("SELECT * FROM tasks").fetchall()
        return [_row_to_task(row) for row in rows]

    @storage_operation
    def upsert(self, task: Task) -> None:
        """Insert a task, or overwrite every field of the existing one."""
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO tasks (id, title, description, isCompleted, createdAt, updatedAt, isSynced)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    description = excluded.description,
                    isCompleted = excluded.isCompleted,
                    createdAt = excluded.createdAt,
                    updatedAt = excluded.updatedAt,
                    isSynced = excluded.isSynced
                """,
                (
                    task.id,
                    task.title,
                    task.description or "",
                    1 if task.is_completed else 0,
                    task.created_at,
                    task.updated_at,
                    1 if task.is_synced else 0,
                ),
            )

    @storage_operation
    def remove(self, task_id: str) -> None:
        """Delete a task if present. No tombstone is recorded."""
        with self.conn:
            self.conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))

    # ===== User operations =====

    @storage_operation
    def get_task(self, task_id: str) -> Optional[Task]:
        """Get a specific task by ID."""
        row = self.conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(row) if row else None

    @storage_operation
    def list_tasks(self, status: Optional[str] = "all") -> List[Task]:
        """List tasks newest first.

        Args:
            status: "all", "pending" (not completed) or "completed"
        """
        status = validate_status_filter(status)
        sql = "SELECT * FROM tasks"
        if status == "pending":
            sql += " WHERE isCompleted = 0"
        elif status == "completed":
            sql += " WHERE isCompleted = 1"
        sql += " ORDER BY createdAt DESC, id DESC"
        return [_row_to_task(row) for row in self.conn.execute(sql).fetchall()]

    @storage_operation
    def create_task(
        self, title: str, description: str = "", is_completed: bool = False
    ) -> Task:
        """Create a new, unsynced task.

        Raises:
            ValidationError: If title or description is invalid
        """
        task = Task.new(title, description=description, is_completed=is_completed)
        self.upsert(task)
        logger.info(f"Created task {task.id}")
        return task

    @storage_operation
    def update_task(self, task_id: str, patch: TaskPatch) -> Optional[Task]:
        """Apply a partial update to a task and mark it unsynced.

        updatedAt is always restamped (monotonically); a patch-supplied
        updatedAt or isSynced is ignored for local edits.

        Returns:
            The updated task, or None if no such task exists
        """
        current = self.get_task(task_id)
        if current is None:
            return None
        local_patch = replace(patch, updated_at=next_timestamp(current.updated_at))
        updated = local_patch.apply(current, current.updated_at).with_synced(False)
        self.upsert(updated)
        logger.info(f"Updated task {task_id}")
        return updated

    @storage_operation
    def toggle_task(self, task_id: str) -> Optional[Task]:
        """Flip a task's completion state."""
        current = self.get_task(task_id)
        if current is None:
            return None
        return self.update_task(task_id, TaskPatch(is_completed=not current.is_completed))

    @storage_operation
    def delete_task(self, task_id: str) -> bool:
        """Delete a task and queue the delete for the server.

        Returns:
            True if the task existed
        """
        validate_task_id(task_id)
        with self.conn:
            cursor = self.conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            if cursor.rowcount == 0:
                return False
            self.conn.execute(
                "INSERT OR REPLACE INTO deleted_tasks (id, deletedAt) VALUES (?, ?)",
                (task_id, now_iso()),
            )
        logger.info(f"Deleted task {task_id} (queued for server)")
        return True

    @storage_operation
    def count_unsynced(self) -> int:
        """Count tasks with local changes not yet on the server."""
        row = self.conn.execute("SELECT COUNT(*) FROM tasks WHERE isSynced = 0").fetchone()
        return int(row[0])

    # ===== Delete tombstones =====

    @storage_operation
    def pending_deletes(self) -> List[str]:
        """Get IDs deleted locally but not yet deleted on the server, oldest first."""
        rows = self.conn.execute(
            "SELECT id FROM deleted_tasks ORDER BY deletedAt, id"
        ).fetchall()
        return [row["id"] for row in rows]

    @storage_operation
    def clear_pending_delete(self, task_id: str) -> None:
        """Forget a delete tombstone once the server has applied it."""
        with self.conn:
            self.conn.execute("DELETE FROM deleted_tasks WHERE id = ?", (task_id,))
