"""Conversion between Task objects and their JSON wire form.

The wire form uses the camelCase field names of the on-disk format and
renders timestamps as ISO-8601 strings (UTC with a "Z" suffix).
completedAt is omitted rather than written as null.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Sequence

from jikanicle.errors import SerializationError, SerializationErrorType
from jikanicle.models import Task
from jikanicle.result import Err, Ok, Result
from jikanicle.validation import format_field_errors, validate_task

# (wire name, attribute name)
WIRE_FIELDS = (
    ("id", "id"),
    ("name", "name"),
    ("description", "description"),
    ("status", "status"),
    ("category", "category"),
    ("priority", "priority"),
    ("estimatedDuration", "estimated_duration"),
    ("tags", "tags"),
    ("createdAt", "created_at"),
    ("updatedAt", "updated_at"),
    ("completedAt", "completed_at"),
)

DATE_FIELDS = ("createdAt", "updatedAt", "completedAt")


def format_timestamp(value: datetime) -> str:
    """Render a datetime as ISO-8601, using "Z" for UTC."""
    text = value.isoformat()
    if text.endswith("+00:00"):
        text = text[:-6] + "Z"
    return text


def parse_timestamp(value: Any) -> Any:
    """Parse an ISO-8601 string into a datetime.

    Anything that cannot be parsed is returned unchanged so the validator
    reports it against the right field.
    """
    if not isinstance(value, str):
        return value
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return value


def to_serializable(task: Task) -> Dict[str, Any]:
    """Convert a Task into a JSON-safe dictionary.

    Raises:
        AttributeError, TypeError: If the task is not Task-shaped
    """
    data: Dict[str, Any] = {
        "id": task.id,
        "name": task.name,
        "description": task.description,
        "status": task.status.value,
        "category": task.category.value,
        "priority": task.priority.value,
        "estimatedDuration": task.estimated_duration,
        "tags": list(task.tags),
        "createdAt": format_timestamp(task.created_at),
        "updatedAt": format_timestamp(task.updated_at),
    }
    if task.completed_at is not None:
        data["completedAt"] = format_timestamp(task.completed_at)
    return data


def from_serializable(data: Any) -> Result[Task, SerializationError]:
    """Convert a decoded wire-form dictionary back into a validated Task."""
    if not isinstance(data, dict):
        return Err(SerializationError(
            SerializationErrorType.DESERIALIZATION,
            "Invalid task data: expected a JSON object",
        ))

    candidate: Dict[str, Any] = {}
    for wire_name, attribute in WIRE_FIELDS:
        if wire_name not in data:
            continue
        value = data[wire_name]
        if wire_name in DATE_FIELDS:
            value = parse_timestamp(value)
        candidate[attribute] = value

    result = validate_task(candidate)
    if result.is_err():
        return Err(SerializationError(
            SerializationErrorType.DESERIALIZATION,
            f"Invalid task data: {format_field_errors(result.error)}",
            cause=result.error,
        ))
    return Ok(result.value)


def serialize_task(task: Task) -> Result[str, SerializationError]:
    """Serialize a task to a JSON string.

    Args:
        task: Task to serialize

    Returns:
        Ok with the JSON text, or Err(serialization)
    """
    try:
        return Ok(json.dumps(to_serializable(task), indent=2))
    except (AttributeError, TypeError, ValueError) as e:
        return Err(SerializationError(
            SerializationErrorType.SERIALIZATION,
            f"Failed to convert task: {e}",
            cause=e,
        ))


def deserialize_task(json_string: str) -> Result[Task, SerializationError]:
    """Parse a JSON string into a validated Task.

    A malformed document and a well-formed document with an invalid shape
    both fail with a deserialization error, with different messages.

    Args:
        json_string: JSON text of a single task

    Returns:
        Ok with the Task, or Err(deserialization)
    """
    try:
        data = json.loads(json_string)
    except (json.JSONDecodeError, TypeError) as e:
        return Err(SerializationError(
            SerializationErrorType.DESERIALIZATION,
            f"Failed to parse task JSON: {e}",
            cause=e,
        ))
    return from_serializable(data)


def serialize_tasks(tasks: Sequence[Task]) -> Result[str, SerializationError]:
    """Serialize a list of tasks to a JSON array.

    Fails on the first task that cannot be converted.
    """
    items: List[Dict[str, Any]] = []
    for index, task in enumerate(tasks):
        try:
            items.append(to_serializable(task))
        except (AttributeError, TypeError, ValueError) as e:
            return Err(SerializationError(
                SerializationErrorType.SERIALIZATION,
                f"Failed to convert task at index {index}: {e}",
                cause=e,
            ))
    try:
        return Ok(json.dumps(items, indent=2))
    except (TypeError, ValueError) as e:
        return Err(SerializationError(
            SerializationErrorType.SERIALIZATION,
            f"Failed to encode task list: {e}",
            cause=e,
        ))


def deserialize_tasks(json_string: str) -> Result[List[Task], SerializationError]:
    """Parse a JSON array into a list of validated tasks.

    Fails on the first invalid element; never returns a partial list.
    """
    try:
        data = json.loads(json_string)
    except (json.JSONDecodeError, TypeError) as e:
        return Err(SerializationError(
            SerializationErrorType.DESERIALIZATION,
            f"Failed to parse task list JSON: {e}",
            cause=e,
        ))

    if not isinstance(data, list):
        return Err(SerializationError(
            SerializationErrorType.DESERIALIZATION,
            "Invalid task list: expected a JSON array",
        ))

    tasks: List[Task] = []
    for index, item in enumerate(data):
        result = from_serializable(item)
        if result.is_err():
            return Err(SerializationError(
                SerializationErrorType.DESERIALIZATION,
                f"Invalid task at index {index}: {result.error.message}",
                cause=result.error.cause,
            ))
        tasks.append(result.value)
    return Ok(tasks)
