"""Data models for todosync.

This module defines the immutable Task record shared by the local store,
the task server and the sync client, and TaskPatch, the partial-update
value used by the update operations.

IDs are opaque strings. New IDs are UUID7 hex strings (32 characters, no
hyphens), so they sort by creation time.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Union

from uuid6 import uuid7

from .timestamp_utils import now_iso
from .validation import (
    ValidationError,
    validate_bool,
    validate_description,
    validate_task_id,
    validate_timestamp,
    validate_title,
)

__all__ = ["Task", "TaskPatch", "UNSET", "new_task_id"]


def new_task_id() -> str:
    """Generate a new task ID (UUID7 hex string)."""
    return uuid7().hex


@dataclass(frozen=True)
class Task:
    """Represents a task and its synchronization metadata.

    Attributes:
        id: Unique identifier, immutable once created
        title: Non-empty display string
        description: Optional longer text ("" when absent)
        is_completed: Whether the task is done
        created_at: ISO-8601 creation time, never mutated
        updated_at: ISO-8601 time of the last mutation; decides conflicts
        is_synced: Local bookkeeping flag. True means the local copy matched
            the server copy as of updated_at. The server always reports True.
    """

    id: str
    title: str
    created_at: str
    updated_at: str
    description: str = ""
    is_completed: bool = False
    is_synced: bool = False

    @classmethod
    def new(
        cls,
        title: str,
        description: str = "",
        is_completed: bool = False,
        task_id: Optional[str] = None,
        updated_at: Optional[str] = None,
    ) -> "Task":
        """Create a brand-new, unsynced task stamped with the current time."""
        created_at = now_iso()
        return cls(
            id=validate_task_id(task_id) if task_id is not None else new_task_id(),
            title=validate_title(title),
            description=validate_description(description),
            is_completed=validate_bool(is_completed, "isCompleted"),
            created_at=created_at,
            updated_at=(
                validate_timestamp(updated_at) if updated_at is not None else created_at
            ),
            is_synced=False,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON wire representation."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "isCompleted": self.is_completed,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "isSynced": self.is_synced,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Task":
        """Build a Task from its JSON wire representation.

        id, title, createdAt and updatedAt are required. description,
        isCompleted and isSynced fall back to "", False and False.

        Raises:
            ValidationError: If a field is missing or has the wrong type
        """
        if not isinstance(data, dict):
            raise ValidationError("task", f"must be an object, got {type(data).__name__}")
        for key in ("id", "title", "createdAt", "updatedAt"):
            if key not in data:
                raise ValidationError(key, "is required")
        validate_title(data["title"])
        return cls(
            id=validate_task_id(data["id"]),
            title=data["title"],
            description=validate_description(data.get("description")),
            is_completed=validate_bool(data.get("isCompleted", False), "isCompleted"),
            created_at=validate_timestamp(data["createdAt"], "createdAt"),
            updated_at=validate_timestamp(data["updatedAt"], "updatedAt"),
            is_synced=validate_bool(data.get("isSynced", False), "isSynced"),
        )

    def with_synced(self, is_synced: bool = True) -> "Task":
        """Return a copy with the synced flag set."""
        return replace(self, is_synced=is_synced)

    def same_content(self, other: "Task") -> bool:
        """Compare every field except the local-only synced flag."""
        return self.with_synced(True) == other.with_synced(True)


class _Unset:
    """Marker for a patch attribute that was not provided."""

    _instance: Optional["_Unset"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()

# Wire name -> attribute name for the mutable fields
_PATCH_FIELDS = {
    "title": "title",
    "description": "description",
    "isCompleted": "is_completed",
    "updatedAt": "updated_at",
    "isSynced": "is_synced",
}


@dataclass(frozen=True)
class TaskPatch:
    """A partial update to a task.

    Every attribute is either a value or UNSET. UNSET attributes leave the
    task unchanged; there is no "None means absent" convention.
    """

    title: Union[str, _Unset] = UNSET
    description: Union[str, _Unset] = UNSET
    is_completed: Union[bool, _Unset] = UNSET
    updated_at: Union[str, _Unset] = UNSET
    is_synced: Union[bool, _Unset] = UNSET

    def __post_init__(self) -> None:
        if self.title is not UNSET:
            object.__setattr__(self, "title", validate_title(self.title))
        if self.description is not UNSET:
            object.__setattr__(self, "description", validate_description(self.description))
        if self.is_completed is not UNSET:
            object.__setattr__(
                self, "is_completed", validate_bool(self.is_completed, "isCompleted")
            )
        if self.updated_at is not UNSET:
            validate_timestamp(self.updated_at)
        if self.is_synced is not UNSET:
            object.__setattr__(self, "is_synced", validate_bool(self.is_synced, "isSynced"))

    @classmethod
    def from_dict(cls, data: Any) -> "TaskPatch":
        """Build a patch from a wire payload, by key presence.

        Unknown keys (including id and createdAt, which are immutable) are
        ignored. A key that is present with a null value is rejected.

        Raises:
            ValidationError: If the payload or a provided field is invalid
        """
        if not isinstance(data, dict):
            raise ValidationError("body", f"must be an object, got {type(data).__name__}")
        kwargs: Dict[str, Any] = {}
        for wire_name, attr in _PATCH_FIELDS.items():
            if wire_name not in data:
                continue
            if data[wire_name] is None:
                raise ValidationError(wire_name, "cannot be null")
            kwargs[attr] = data[wire_name]
        return cls(**kwargs)

    def fields(self) -> Dict[str, Any]:
        """Get the provided attributes as a dict keyed by attribute name."""
        return {
            attr: getattr(self, attr)
            for attr in _PATCH_FIELDS.values()
            if getattr(self, attr) is not UNSET
        }

    def is_empty(self) -> bool:
        return not self.fields()

    def changes_content(self) -> bool:
        """Check whether the patch touches a business field."""
        return any(
            attr in ("title", "description", "is_completed") for attr in self.fields()
        )

    def apply(self, task: Task, stamp: str) -> Task:
        """Return task with this patch applied.

        Args:
            task: The current task
            stamp: updatedAt to use when the patch does not carry one

        Returns:
            The patched task
        """
        changes = self.fields()
        changes.setdefault("updated_at", stamp)
        return replace(task, **changes)
