"""Task creation and update rules.

create_task() builds a new Task with a generated id and timestamps.
update_task() applies a partial change set to an existing task and
enforces the business rules: id and created_at are immutable, a
CANCELLED task cannot be resumed, and completed_at follows the status.
Neither function mutates its input.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from jikanicle.models import Category, Priority, Status, Task
from jikanicle.result import Err, Ok, Result
from jikanicle.validation import FieldErrors, validate_task

IMMUTABLE_FIELDS = {"id": "id", "created_at": "created_at", "createdAt": "created_at"}

UPDATABLE_FIELDS = (
    "name",
    "description",
    "status",
    "category",
    "priority",
    "estimated_duration",
    "tags",
    "updated_at",
    "completed_at",
)


class UpdateTaskErrorType(Enum):
    """Reasons an update can be rejected."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    IMMUTABLE_FIELD_MODIFICATION = "IMMUTABLE_FIELD_MODIFICATION"


@dataclass(frozen=True)
class UpdateTaskError:
    """Rejected update.

    Attributes:
        type: Reason for the rejection
        message: Human-readable description
        errors: Field error map (VALIDATION_ERROR)
        field_name: Offending field (IMMUTABLE_FIELD_MODIFICATION)
    """

    type: UpdateTaskErrorType
    message: str
    errors: Dict[str, List[str]] = field(default_factory=dict)
    field_name: Optional[str] = None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def create_task(
    name: str,
    estimated_duration: float,
    category: Union[Category, str],
    *,
    id: Optional[str] = None,
    description: str = "",
    status: Union[Status, str] = Status.NOT_STARTED,
    priority: Union[Priority, str] = Priority.MEDIUM,
    created_at: Optional[datetime] = None,
    tags: Optional[Sequence[str]] = None,
) -> Result[Task, FieldErrors]:
    """Create a new task.

    Args:
        name: Task name
        estimated_duration: Estimated effort in minutes
        category: Task category
        id: Explicit id (a uuid4 is generated if None)
        description: Free text
        status: Initial status (default: NOT_STARTED); COMPLETED also stamps completed_at
        priority: Priority level (default: MEDIUM)
        created_at: Creation timestamp (default: now)
        tags: Initial tags

    Returns:
        Ok with the Task, or Err with a field error map
    """
    now = utc_now()
    candidate = {
        "id": id if id is not None else str(uuid.uuid4()),
        "name": name,
        "description": description,
        "status": status,
        "category": category,
        "priority": priority,
        "estimated_duration": estimated_duration,
        "tags": list(tags) if tags is not None else [],
        "created_at": created_at if created_at is not None else now,
        "updated_at": now,
    }
    validated = validate_task(candidate)
    if validated.is_ok() and validated.value.status is Status.COMPLETED:
        return Ok(replace(validated.value, completed_at=now))
    return validated


def _completed_at_after(task: Task, new_status: Optional[Status]) -> Optional[datetime]:
    if new_status is None or new_status == task.status:
        return task.completed_at
    if new_status is Status.COMPLETED:
        return utc_now()
    return None


def update_task(task: Task, changes: Mapping[str, Any]) -> Result[Task, UpdateTaskError]:
    """Apply a partial update to a task.

    Args:
        task: Current task
        changes: Attribute names mapped to new values

    Returns:
        Ok with a new Task, or Err(UpdateTaskError)
    """
    if not isinstance(changes, Mapping):
        return Err(UpdateTaskError(
            UpdateTaskErrorType.VALIDATION_ERROR,
            "Update parameters must be a mapping",
            errors={"changes": ["must be a mapping"]},
        ))

    for key, attribute in IMMUTABLE_FIELDS.items():
        if key in changes:
            return Err(UpdateTaskError(
                UpdateTaskErrorType.IMMUTABLE_FIELD_MODIFICATION,
                f"Field '{attribute}' cannot be modified",
                field_name=attribute,
            ))

    unknown = sorted(key for key in changes if key not in UPDATABLE_FIELDS)
    if unknown:
        return Err(UpdateTaskError(
            UpdateTaskErrorType.VALIDATION_ERROR,
            "Unknown task fields in update",
            errors={key: ["is not an updatable field"] for key in unknown},
        ))

    candidate = {name: getattr(task, name) for name in ("id", "created_at", *UPDATABLE_FIELDS)}
    candidate.update(changes)
    validated = validate_task(candidate)
    if validated.is_err():
        return Err(UpdateTaskError(
            UpdateTaskErrorType.VALIDATION_ERROR,
            "Invalid task update parameters",
            errors=validated.error,
        ))
    new_status = validated.value.status if "status" in changes else None

    if task.status is Status.CANCELLED and new_status is not None and new_status is not Status.CANCELLED:
        return Err(UpdateTaskError(
            UpdateTaskErrorType.INVALID_STATUS_TRANSITION,
            "A cancelled task cannot be resumed",
        ))

    return Ok(replace(
        validated.value,
        updated_at=utc_now(),
        completed_at=_completed_at_after(task, new_status),
    ))
