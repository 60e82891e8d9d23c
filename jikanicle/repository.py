"""Task repository for managing task persistence.

This module provides the TaskRepository interface, the TaskFilter used by
find_all()/count(), and FileTaskRepository, which stores one JSON file per
task inside a data directory through a FileSystemAdapter.

Storage errors never leave this module untranslated: they are mapped to
RepositoryError per map_storage_error().
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Collection, List, Optional, Sequence

from jikanicle.errors import (
    RepositoryError,
    RepositoryErrorType,
    StorageError,
    StorageErrorType,
    map_serialization_error,
    map_storage_error,
)
from jikanicle.models import Category, Status, Task
from jikanicle.result import Err, Ok, Result
from jikanicle.serialization import deserialize_task, serialize_task
from jikanicle.storage import FileSystemAdapter
from jikanicle.validation import as_utc

logger = logging.getLogger(__name__)

DEFAULT_FILE_EXTENSION = ".json"
DEFAULT_INDEX_FILE_NAME = "index.json"


@dataclass(frozen=True)
class TaskFilter:
    """Criteria for selecting tasks. All supplied criteria must hold.

    Attributes:
        status: Task status must be one of these
        category: Task category must equal this
        tags: Task must carry at least one of these tags
        created_after: created_at must be at or after this instant
        created_before: created_at must be strictly before this instant
        text_search: Case-insensitive substring of name, description or a tag
    """

    status: Optional[Collection[Status]] = None
    category: Optional[Category] = None
    tags: Optional[Sequence[str]] = None
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None
    text_search: Optional[str] = None


def matches_filter(task: Task, task_filter: Optional[TaskFilter] = None) -> bool:
    """Return True if task satisfies every criterion of task_filter."""
    if task_filter is None:
        return True

    if task_filter.status is not None and task.status not in task_filter.status:
        return False

    if task_filter.category is not None and task.category != task_filter.category:
        return False

    if task_filter.tags:
        if not any(tag in task.tags for tag in task_filter.tags):
            return False

    created_at = as_utc(task.created_at)
    if task_filter.created_after is not None and created_at < as_utc(task_filter.created_after):
        return False
    if task_filter.created_before is not None and created_at >= as_utc(task_filter.created_before):
        return False

    if task_filter.text_search:
        needle = task_filter.text_search.lower()
        haystacks = [task.name, task.description, *task.tags]
        if not any(needle in text.lower() for text in haystacks):
            return False

    return True


class TaskRepository(ABC):
    """Abstract base class for task repositories."""

    @abstractmethod
    async def find_by_id(self, task_id: str) -> Result[Task, RepositoryError]:
        """Get a task by id.

        Args:
            task_id: ID of the task to retrieve

        Returns:
            Ok with the Task, Err(NOT_FOUND) or Err(STORAGE_ERROR)
        """
        pass

    @abstractmethod
    async def find_all(self, task_filter: Optional[TaskFilter] = None) -> Result[List[Task], RepositoryError]:
        """Get all tasks, optionally filtered.

        Args:
            task_filter: Optional criteria; None matches everything

        Returns:
            Ok with the matching tasks, or Err(STORAGE_ERROR)
        """
        pass

    @abstractmethod
    async def save(self, task: Task) -> Result[Task, RepositoryError]:
        """Create or replace a task, keyed by its id.

        Returns:
            Ok with the saved task, unchanged
        """
        pass

    @abstractmethod
    async def delete(self, task_id: str) -> Result[None, RepositoryError]:
        """Delete a task by id. Err(NOT_FOUND) if it does not exist."""
        pass

    @abstractmethod
    async def count(self, task_filter: Optional[TaskFilter] = None) -> Result[int, RepositoryError]:
        """Count tasks, optionally filtered."""
        pass


class FileTaskRepository(TaskRepository):
    """Repository storing each task as "<data_dir>/<id><ext>".

    The data directory is created opportunistically at construction (when
    an event loop is running) and again before every save, so it may not
    exist until the first write.

    Attributes:
        fs: Adapter used for every file operation
        data_dir: Directory holding the task files
        file_extension: Extension of task files, including the dot
        index_file_name: Reserved file name excluded from enumeration
    """

    def __init__(
        self,
        fs: FileSystemAdapter,
        data_dir: str,
        file_extension: str = DEFAULT_FILE_EXTENSION,
        index_file_name: str = DEFAULT_INDEX_FILE_NAME,
    ):
        self.fs = fs
        self.data_dir = data_dir
        self.file_extension = file_extension
        self.index_file_name = index_file_name
        self._init_task: Optional["asyncio.Task[Result[None, RepositoryError]]"] = None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            self._init_task = loop.create_task(self.initialize())

    async def initialize(self) -> Result[None, RepositoryError]:
        """Create the data directory if it does not exist."""
        result = await self.fs.ensure_directory(self.data_dir)
        if result.is_err():
            logger.debug("Could not ensure data directory %s: %s", self.data_dir, result.error)
            return Err(map_storage_error(result.error))
        return Ok(None)

    def task_file_path(self, task_id: str) -> Result[str, StorageError]:
        """Build the file path of a task.

        Returns:
            Ok with the path, or Err(INVALID_PATH) for an empty or non-string id
        """
        if not isinstance(task_id, str) or task_id == "" or os.sep in task_id or "/" in task_id:
            return Err(StorageError(
                StorageErrorType.INVALID_PATH,
                f"Invalid task id: [{task_id}]",
                f"{self.data_dir}/{task_id}{self.file_extension}",
            ))
        return Ok(os.path.join(self.data_dir, f"{task_id}{self.file_extension}"))

    async def _task_file_names(self) -> Result[List[str], RepositoryError]:
        files_result = await self.fs.list_files(self.data_dir, f"*{self.file_extension}")
        if files_result.is_err():
            if files_result.error.type is StorageErrorType.NOT_FOUND:
                # Directory not created yet: nothing has been saved
                return Ok([])
            return Err(map_storage_error(files_result.error))
        return Ok([name for name in files_result.value if name != self.index_file_name])

    async def _load(self, file_path: str) -> Result[Task, RepositoryError]:
        file_result = await self.fs.read_file(file_path)
        if file_result.is_err():
            return Err(map_storage_error(file_result.error))

        task_result = deserialize_task(file_result.value)
        if task_result.is_err():
            return Err(map_serialization_error(task_result.error))
        return Ok(task_result.value)

    async def find_by_id(self, task_id: str) -> Result[Task, RepositoryError]:
        path_result = self.task_file_path(task_id)
        if path_result.is_err():
            return Err(map_storage_error(path_result.error))
        return await self._load(path_result.value)

    async def find_all(self, task_filter: Optional[TaskFilter] = None) -> Result[List[Task], RepositoryError]:
        names_result = await self._task_file_names()
        if names_result.is_err():
            return names_result

        names = names_result.value
        if not names:
            return Ok([])

        results = await asyncio.gather(
            *(self._load(os.path.join(self.data_dir, name)) for name in names)
        )

        # First error in listing order, independent of completion order
        for result in results:
            if result.is_err():
                return result

        tasks = [result.value for result in results if matches_filter(result.value, task_filter)]
        logger.debug("Loaded %d task(s), %d matched", len(results), len(tasks))
        return Ok(tasks)

    async def save(self, task: Task) -> Result[Task, RepositoryError]:
        init_result = await self.initialize()
        if init_result.is_err():
            error = init_result.error
            return Err(RepositoryError(
                error.type,
                f"Failed to create data directory: {error.message}",
                cause=error.cause,
            ))

        serialize_result = serialize_task(task)
        if serialize_result.is_err():
            return Err(map_serialization_error(serialize_result.error))

        path_result = self.task_file_path(task.id)
        if path_result.is_err():
            return Err(map_storage_error(path_result.error))

        write_result = await self.fs.atomic_write_file(path_result.value, serialize_result.value)
        if write_result.is_err():
            return Err(map_storage_error(write_result.error))

        logger.debug("Saved task %s", task.id)
        return Ok(task)

    async def delete(self, task_id: str) -> Result[None, RepositoryError]:
        path_result = self.task_file_path(task_id)
        if path_result.is_err():
            return Err(map_storage_error(path_result.error))
        file_path = path_result.value

        exists_result = await self.fs.file_exists(file_path)
        if exists_result.is_err():
            return Err(map_storage_error(exists_result.error))
        if not exists_result.value:
            return Err(RepositoryError(RepositoryErrorType.NOT_FOUND, f"Task not found: {task_id}"))

        delete_result = await self.fs.delete_file(file_path)
        if delete_result.is_err():
            return Err(map_storage_error(delete_result.error))

        logger.debug("Deleted task %s", task_id)
        return Ok(None)

    async def count(self, task_filter: Optional[TaskFilter] = None) -> Result[int, RepositoryError]:
        if task_filter is not None:
            tasks_result = await self.find_all(task_filter)
            if tasks_result.is_err():
                return tasks_result
            return Ok(len(tasks_result.value))

        names_result = await self._task_file_names()
        if names_result.is_err():
            return names_result
        return Ok(len(names_result.value))
