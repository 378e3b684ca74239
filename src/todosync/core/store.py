"""Authoritative task store used by the task server.

TaskStore declares a handful of storage primitives and implements the
server-side task operations (create, update, delete and the batch
reconcile) once on top of them, so every backing engine resolves
conflicts the same way. MemoryTaskStore is the in-process engine the
server uses by default.

CRITICAL: This module must have NO web or CLI dependencies.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import ContextManager, Dict, Iterable, List, Optional

from .errors import NotFound
from .models import Task, TaskPatch, new_task_id
from .timestamp_utils import is_newer, next_timestamp, now_iso, parse_timestamp
from .validation import (
    ValidationError,
    validate_bool,
    validate_description,
    validate_task_id,
    validate_timestamp,
    validate_title,
)

logger = logging.getLogger(__name__)

__all__ = ["TaskStore", "MemoryTaskStore"]


class TaskStore(ABC):
    """Base class for server-side task stores.

    Subclasses provide the primitives; everything else is shared. Stored
    tasks always carry is_synced=True: on the server the flag has no
    business meaning.
    """

    # ===== Primitives =====

    @abstractmethod
    def list_all(self) -> List[Task]:
        """Get the full task list."""

    @abstractmethod
    def get(self, task_id: str) -> Optional[Task]:
        """Get one task, or None."""

    @abstractmethod
    def put(self, task: Task) -> None:
        """Insert a task or overwrite the stored task with the same id."""

    @abstractmethod
    def discard(self, task_id: str) -> Optional[Task]:
        """Remove a task and return it, or None if it was absent."""

    @abstractmethod
    def transaction(self) -> ContextManager:
        """Context manager making a sequence of primitive calls atomic."""

    # ===== Operations =====

    def count(self) -> int:
        return len(self.list_all())

    def create(
        self,
        title: str,
        description: str = "",
        is_completed: bool = False,
        updated_at: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> Task:
        """Store a new task.

        Args:
            title: Task title
            description: Optional description
            is_completed: Initial completion state
            updated_at: Client-supplied updatedAt (defaults to server time)
            task_id: Client-supplied id to confirm (defaults to a new UUID7)

        Returns:
            The stored task

        Raises:
            ValidationError: If a field is invalid or task_id is already taken
        """
        created_at = now_iso()
        task = Task(
            id=validate_task_id(task_id) if task_id is not None else new_task_id(),
            title=validate_title(title),
            description=validate_description(description),
            is_completed=validate_bool(is_completed, "isCompleted"),
            created_at=created_at,
            updated_at=validate_timestamp(updated_at) if updated_at is not None else created_at,
            is_synced=True,
        )
        with self.transaction():
            if self.get(task.id) is not None:
                raise ValidationError("id", f"task {task.id} already exists")
            self.put(task)
        logger.info(f"Created task {task.id}")
        return task

    def update(self, task_id: str, patch: TaskPatch) -> Task:
        """Apply a partial update.

        updatedAt is refreshed server-side when the patch does not carry
        one. A supplied updatedAt older than the stored one is rejected so
        updatedAt never moves backwards.

        Raises:
            NotFound: If no task has this id
            ValidationError: If the supplied updatedAt is older than the stored one
        """
        with self.transaction():
            current = self.get(task_id)
            if current is None:
                raise NotFound(task_id)
            if patch.updated_at and is_newer(current.updated_at, patch.updated_at):
                raise ValidationError(
                    "updatedAt",
                    f"{patch.updated_at} is older than the stored {current.updated_at}",
                )
            updated = patch.apply(current, next_timestamp(current.updated_at)).with_synced(True)
            self.put(updated)
        logger.info(f"Updated task {task_id}")
        return updated

    def delete(self, task_id: str) -> Task:
        """Remove a task and return it.

        Raises:
            NotFound: If no task has this id
        """
        with self.transaction():
            deleted = self.discard(task_id)
        if deleted is None:
            raise NotFound(task_id)
        logger.info(f"Deleted task {task_id}")
        return deleted

    def reconcile(self, batch: Iterable[Task]) -> List[Task]:
        """Resolve a batch of client tasks against the stored ones.

        Each task is handled independently, in order:
        - unknown id: stored as-is, reported as updated
        - known id, incoming updatedAt strictly newer: overwrites the
          stored task, reported as updated
        - known id, stored copy as new or newer: nothing changes

        Args:
            batch: Tasks pushed by a client (already validated)

        Returns:
            The tasks that were inserted or overwritten, as stored, in
            processing order
        """
        updated: List[Task] = []
        inserted = overwritten = kept = 0
        with self.transaction():
            for incoming in batch:
                stored = self.get(incoming.id)
                if stored is None:
                    inserted += 1
                elif parse_timestamp(incoming.updated_at) > parse_timestamp(stored.updated_at):
                    overwritten += 1
                else:
                    kept += 1
                    logger.debug(
                        f"Kept stored task {stored.id}: {stored.updated_at} "
                        f">= incoming {incoming.updated_at}"
                    )
                    continue
                accepted = incoming.with_synced(True)
                self.put(accepted)
                updated.append(accepted)
        logger.info(
            f"Reconciled batch: {inserted} inserted, {overwritten} overwritten, {kept} kept"
        )
        return updated


class MemoryTaskStore(TaskStore):
    """In-memory task store, owned by one server instance for its lifetime.

    Tasks are kept in insertion order. All access goes through a
    re-entrant lock, so request threads never see a half-applied batch.
    """

    def __init__(self, tasks: Optional[Iterable[Task]] = None) -> None:
        self._tasks: Dict[str, Task] = {}
        self._lock = threading.RLock()
        for task in tasks or ():
            self.put(task.with_synced(True))

    def list_all(self) -> List[Task]:
        with self._lock:
            return list(self._tasks.values())

    def get(self, task_id: str) -> Optional[Task]:
        with self._lock:
            return self._tasks.get(task_id)

    def put(self, task: Task) -> None:
        with self._lock:
            self._tasks[task.id] = task

    def discard(self, task_id: str) -> Optional[Task]:
        with self._lock:
            return self._tasks.pop(task_id, None)

    def transaction(self) -> ContextManager:
        return self._lock

    def count(self) -> int:
        with self._lock:
            return len(self._tasks)
