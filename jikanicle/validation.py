"""Shape validation for task candidates.

validate_task() takes a task-shaped mapping (Python attribute names,
enum members or their string values, datetime objects) and either builds
a Task or reports every offending field.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Type

from jikanicle.models import Category, Priority, Status, Task
from jikanicle.result import Err, Ok, Result

FieldErrors = Dict[str, List[str]]


def _add(errors: FieldErrors, name: str, message: str) -> None:
    errors.setdefault(name, []).append(message)


def _coerce_enum(errors: FieldErrors, name: str, value: Any, enum_type: Type[Enum]) -> Any:
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except (ValueError, TypeError):
        allowed = ", ".join(member.value for member in enum_type)
        _add(errors, name, f"must be one of: {allowed}")
        return None


def as_utc(value: datetime) -> datetime:
    """Read a naive datetime as UTC; aware datetimes are returned unchanged."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _check_datetime(errors: FieldErrors, name: str, value: Any) -> None:
    if not isinstance(value, datetime):
        _add(errors, name, "must be a datetime")


def validate_task(candidate: Mapping[str, Any]) -> Result[Task, FieldErrors]:
    """Validate a task-shaped mapping and build a Task from it.

    Unknown keys are ignored. Naive datetimes are taken to be UTC.

    Args:
        candidate: Mapping keyed by Task attribute names

    Returns:
        Ok with the Task, or Err with a map of field name to messages
    """
    errors: FieldErrors = {}

    for name in ("id", "name", "description", "status", "category", "priority",
                 "estimated_duration", "tags", "created_at", "updated_at"):
        if name not in candidate:
            _add(errors, name, "is required")

    task_id = candidate.get("id")
    if "id" in candidate and (not isinstance(task_id, str) or task_id == ""):
        _add(errors, "id", "must be a non-empty string")

    name = candidate.get("name")
    if "name" in candidate and (not isinstance(name, str) or name == ""):
        _add(errors, "name", "must be a non-empty string")

    description = candidate.get("description")
    if "description" in candidate and not isinstance(description, str):
        _add(errors, "description", "must be a string")

    status = category = priority = None
    if "status" in candidate:
        status = _coerce_enum(errors, "status", candidate["status"], Status)
    if "category" in candidate:
        category = _coerce_enum(errors, "category", candidate["category"], Category)
    if "priority" in candidate:
        priority = _coerce_enum(errors, "priority", candidate["priority"], Priority)

    duration = candidate.get("estimated_duration")
    if "estimated_duration" in candidate:
        # bool is an int subclass but never a duration
        if isinstance(duration, bool) or not isinstance(duration, (int, float)):
            _add(errors, "estimated_duration", "must be a number")
        elif duration < 0:
            _add(errors, "estimated_duration", "must be greater than or equal to 0")

    tags = candidate.get("tags")
    if "tags" in candidate and (
        not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags)
    ):
        _add(errors, "tags", "must be a list of strings")

    for date_field in ("created_at", "updated_at"):
        if date_field in candidate:
            _check_datetime(errors, date_field, candidate[date_field])

    completed_at = candidate.get("completed_at")
    if completed_at is not None:
        _check_datetime(errors, "completed_at", completed_at)

    if errors:
        return Err(errors)

    return Ok(Task(
        id=task_id,
        name=name,
        description=description,
        status=status,
        category=category,
        priority=priority,
        estimated_duration=duration,
        tags=list(tags),
        created_at=as_utc(candidate["created_at"]),
        updated_at=as_utc(candidate["updated_at"]),
        completed_at=as_utc(completed_at) if completed_at is not None else None,
    ))


def format_field_errors(errors: FieldErrors) -> str:
    """Render a field error map as one line, e.g. "name: is required"."""
    return "; ".join(
        f"{name}: {', '.join(messages)}" for name, messages in sorted(errors.items())
    )
