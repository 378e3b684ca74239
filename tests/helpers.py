"""Test helper functions for todosync tests.

This module provides fixed timestamps and a builder for Task records so
tests can state conflict scenarios explicitly.
"""

from __future__ import annotations

from typing import Any

from todosync.core.models import Task

# Ordered timestamps: T0 < T1 < T2
T0 = "2024-05-01T10:00:00.000Z"
T1 = "2024-05-01T11:00:00.000Z"
T2 = "2024-05-01T12:00:00.000Z"

CREATED = "2024-05-01T09:00:00.000Z"


def make_task(
    task_id: str,
    title: str = "Task",
    updated_at: str = T0,
    is_synced: bool = False,
    **kwargs: Any,
) -> Task:
    """Build a Task with fixed timestamps."""
    return Task(
        id=task_id,
        title=title,
        description=kwargs.pop("description", ""),
        is_completed=kwargs.pop("is_completed", False),
        created_at=kwargs.pop("created_at", CREATED),
        updated_at=updated_at,
        is_synced=is_synced,
    )
