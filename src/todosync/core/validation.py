"""Input validation for todosync.

This module provides validation functions for task fields received from
users and from the wire. All validators raise ValidationError with
descriptive messages.
"""

from __future__ import annotations

from typing import Any, List, Optional

from .errors import TodoSyncError
from .timestamp_utils import parse_timestamp


class ValidationError(TodoSyncError, ValueError):
    """Validation error with field and message attributes."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"

    def __repr__(self) -> str:
        return f"ValidationError(field='{self.field}', message='{self.message}')"


__all__ = [
    "ValidationError",
    "validate_task_id",
    "validate_title",
    "validate_description",
    "validate_bool",
    "validate_timestamp",
    "validate_status_filter",
    "validate_task_list",
    "MAX_TITLE_LENGTH",
    "MAX_DESCRIPTION_LENGTH",
    "MAX_TASK_ID_LENGTH",
]

MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500
MAX_TASK_ID_LENGTH = 128
STATUS_FILTERS = ("all", "pending", "completed")


def validate_task_id(value: Any, field_name: str = "id") -> str:
    """Validate a task ID (any non-empty string without slashes)."""
    if not isinstance(value, str):
        raise ValidationError(
            field_name, f"must be a string, got {type(value).__name__}"
        )
    if not value.strip():
        raise ValidationError(field_name, "cannot be empty")
    if len(value) > MAX_TASK_ID_LENGTH:
        raise ValidationError(
            field_name, f"cannot exceed {MAX_TASK_ID_LENGTH} characters (got {len(value)})"
        )
    if "/" in value:
        raise ValidationError(field_name, "cannot contain '/'")
    return value


def validate_title(value: Any) -> str:
    """Validate a task title. Returns the title stripped of outer whitespace."""
    if not isinstance(value, str):
        raise ValidationError("title", f"must be a string, got {type(value).__name__}")
    stripped = value.strip()
    if not stripped:
        raise ValidationError("title", "cannot be empty or whitespace only")
    if len(stripped) > MAX_TITLE_LENGTH:
        raise ValidationError(
            "title", f"cannot exceed {MAX_TITLE_LENGTH} characters (got {len(stripped)})"
        )
    return stripped


def validate_description(value: Any) -> str:
    """Validate a task description. None is read as the empty description."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(
            "description", f"must be a string, got {type(value).__name__}"
        )
    if len(value) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            "description",
            f"cannot exceed {MAX_DESCRIPTION_LENGTH} characters (got {len(value)})",
        )
    return value


def validate_bool(value: Any, field_name: str) -> bool:
    """Validate a boolean flag.

    Accepts real booleans and the 0/1 integers used by the local schema.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise ValidationError(field_name, f"must be a boolean, got {type(value).__name__}")


def validate_timestamp(value: Any, field_name: str = "updatedAt") -> str:
    """Validate an ISO-8601 timestamp string. Returns it unchanged."""
    if not isinstance(value, str):
        raise ValidationError(
            field_name, f"must be an ISO-8601 string, got {type(value).__name__}"
        )
    try:
        parse_timestamp(value)
    except ValueError as e:
        raise ValidationError(field_name, f"invalid ISO-8601 timestamp: {e}") from None
    return value


def validate_status_filter(value: Optional[str]) -> str:
    """Validate a task listing filter ("all", "pending" or "completed")."""
    if value is None:
        return "all"
    if value not in STATUS_FILTERS:
        raise ValidationError(
            "filter", f"must be one of {', '.join(STATUS_FILTERS)}, got '{value}'"
        )
    return value


def validate_task_list(value: Any, field_name: str = "tasks") -> List[Any]:
    """Validate that a payload member is a list."""
    if not isinstance(value, list):
        raise ValidationError(field_name, f"must be a list, got {type(value).__name__}")
    return value
