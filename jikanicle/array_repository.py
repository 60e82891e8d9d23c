"""Task repository backed by a single JSON array file.

All tasks live in one file (e.g. "data/tasks.json"). Because every write
rewrites the whole file, save() and delete() run their read-modify-write
under the adapter's lock on the file path and replace the file with an
atomic write.
"""

import logging
from typing import Awaitable, Callable, List, Optional

from jikanicle.errors import (
    RepositoryError,
    RepositoryErrorType,
    StorageError,
    StorageErrorType,
    map_serialization_error,
    map_storage_error,
)
from jikanicle.models import Task
from jikanicle.repository import TaskFilter, TaskRepository, matches_filter
from jikanicle.result import Err, Ok, Result
from jikanicle.serialization import deserialize_tasks, serialize_tasks
from jikanicle.storage import FileSystemAdapter

logger = logging.getLogger(__name__)

DEFAULT_ARRAY_FILE_NAME = "tasks.json"


def _invalid_id(task_id) -> Optional[RepositoryError]:
    if not isinstance(task_id, str) or task_id == "":
        return map_storage_error(StorageError(
            StorageErrorType.INVALID_PATH,
            f"Invalid task id: [{task_id}]",
            str(task_id),
        ))
    return None


class JsonArrayTaskRepository(TaskRepository):
    """Repository keeping every task in one JSON array file.

    Attributes:
        fs: Adapter used for every file operation
        file_path: Path of the JSON array file
    """

    def __init__(self, fs: FileSystemAdapter, file_path: str):
        self.fs = fs
        self.file_path = file_path

    async def _load_all(self) -> Result[List[Task], RepositoryError]:
        read_result = await self.fs.read_file(self.file_path)
        if read_result.is_err():
            if read_result.error.type is StorageErrorType.NOT_FOUND:
                return Ok([])
            return Err(map_storage_error(read_result.error))

        if not read_result.value.strip():
            return Ok([])

        tasks_result = deserialize_tasks(read_result.value)
        if tasks_result.is_err():
            return Err(map_serialization_error(tasks_result.error))
        return Ok(tasks_result.value)

    async def _store_all(self, tasks: List[Task]) -> Result[None, RepositoryError]:
        serialize_result = serialize_tasks(tasks)
        if serialize_result.is_err():
            return Err(map_serialization_error(serialize_result.error))

        write_result = await self.fs.atomic_write_file(self.file_path, serialize_result.value)
        if write_result.is_err():
            return Err(map_storage_error(write_result.error))
        return Ok(None)

    async def _locked(
        self, operation: Callable[[], Awaitable[Result[object, RepositoryError]]]
    ) -> Result[object, RepositoryError]:
        result = await self.fs.with_lock(self.file_path, operation)
        if result.is_ok() or isinstance(result.error, RepositoryError):
            return result

        error = result.error
        if error.type is StorageErrorType.LOCK_ERROR:
            return Err(RepositoryError(
                RepositoryErrorType.CONCURRENCY_ERROR,
                f"Task file is locked: {self.file_path}",
                cause=error,
            ))
        return Err(map_storage_error(error))

    async def find_by_id(self, task_id: str) -> Result[Task, RepositoryError]:
        id_error = _invalid_id(task_id)
        if id_error is not None:
            return Err(id_error)

        tasks_result = await self._load_all()
        if tasks_result.is_err():
            return tasks_result

        for task in tasks_result.value:
            if task.id == task_id:
                return Ok(task)
        return Err(RepositoryError(RepositoryErrorType.NOT_FOUND, f"Task not found: {task_id}"))

    async def find_all(self, task_filter: Optional[TaskFilter] = None) -> Result[List[Task], RepositoryError]:
        tasks_result = await self._load_all()
        if tasks_result.is_err():
            return tasks_result
        return Ok([task for task in tasks_result.value if matches_filter(task, task_filter)])

    async def save(self, task: Task) -> Result[Task, RepositoryError]:
        id_error = _invalid_id(getattr(task, "id", None))
        if id_error is not None:
            return Err(id_error)

        async def replace_or_append() -> Result[Task, RepositoryError]:
            tasks_result = await self._load_all()
            if tasks_result.is_err():
                return tasks_result

            tasks = tasks_result.value
            for index, existing in enumerate(tasks):
                if existing.id == task.id:
                    tasks[index] = task
                    break
            else:
                tasks.append(task)

            store_result = await self._store_all(tasks)
            if store_result.is_err():
                return store_result
            logger.debug("Saved task %s to %s", task.id, self.file_path)
            return Ok(task)

        return await self._locked(replace_or_append)

    async def delete(self, task_id: str) -> Result[None, RepositoryError]:
        id_error = _invalid_id(task_id)
        if id_error is not None:
            return Err(id_error)

        async def remove() -> Result[None, RepositoryError]:
            tasks_result = await self._load_all()
            if tasks_result.is_err():
                return tasks_result

            remaining = [task for task in tasks_result.value if task.id != task_id]
            if len(remaining) == len(tasks_result.value):
                return Err(RepositoryError(RepositoryErrorType.NOT_FOUND, f"Task not found: {task_id}"))

            store_result = await self._store_all(remaining)
            if store_result.is_err():
                return store_result
            logger.debug("Deleted task %s from %s", task_id, self.file_path)
            return Ok(None)

        return await self._locked(remove)

    async def count(self, task_filter: Optional[TaskFilter] = None) -> Result[int, RepositoryError]:
        tasks_result = await self.find_all(task_filter)
        if tasks_result.is_err():
            return tasks_result
        return Ok(len(tasks_result.value))
