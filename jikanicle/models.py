"""Core models for jikanicle.

This module defines the core data structures for task management:
- Task: A dataclass representing a task with its properties
- Status: Enum for task progress
- Category: Enum classifying what a task is about
- Priority: Enum for task priority levels
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class Status(Enum):
    """Task progress status."""

    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Category(Enum):
    """Task category."""

    WORK = "WORK"
    PERSONAL_DEV = "PERSONAL_DEV"
    HOUSEHOLD = "HOUSEHOLD"
    LEARNING = "LEARNING"
    OTHER = "OTHER"


class Priority(Enum):
    """Task priority levels."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass
class Task:
    """Task model representing a single task item.

    Attributes:
        id: Opaque unique identifier, immutable after creation
        name: Short task name (non-empty)
        description: Free text, may be empty
        status: Current progress status
        category: What kind of task this is
        priority: Priority level of the task
        estimated_duration: Estimated effort in minutes (non-negative)
        created_at: Timestamp when the task was created
        updated_at: Timestamp of the last successful mutation
        tags: Ordered list of tags, duplicates preserved
        completed_at: Set while the task is COMPLETED, None otherwise
    """

    id: str
    name: str
    category: Category
    estimated_duration: float
    created_at: datetime
    updated_at: datetime
    description: str = ""
    status: Status = Status.NOT_STARTED
    priority: Priority = Priority.MEDIUM
    tags: List[str] = field(default_factory=list)
    completed_at: Optional[datetime] = None
