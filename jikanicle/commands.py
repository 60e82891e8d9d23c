"""Task commands built on a TaskRepository.

delete_task() removes a task after confirming it exists.
modify_task() performs a read-modify-write of one task while holding the
adapter's advisory lock on the task id, so two cooperating callers cannot
interleave their updates.
"""

import logging
from typing import Any, Mapping

from jikanicle.errors import RepositoryError, RepositoryErrorType, StorageError, StorageErrorType
from jikanicle.factories import UpdateTaskErrorType, update_task
from jikanicle.models import Task
from jikanicle.repository import TaskRepository
from jikanicle.result import Err, Ok, Result
from jikanicle.storage import FileSystemAdapter

logger = logging.getLogger(__name__)


async def delete_task(task_id: str, repository: TaskRepository) -> Result[None, RepositoryError]:
    """Delete a task by id.

    Args:
        task_id: ID of the task to delete
        repository: Repository holding the task

    Returns:
        Ok(None), Err(NOT_FOUND) if there is no such task, or Err(STORAGE_ERROR)
    """
    found = await repository.find_by_id(task_id)
    if found.is_err():
        if found.error.type is RepositoryErrorType.NOT_FOUND:
            return found
        return Err(RepositoryError(
            RepositoryErrorType.STORAGE_ERROR,
            "Failed to look up task before deletion",
            cause=found.error,
        ))

    deleted = await repository.delete(task_id)
    if deleted.is_err():
        if deleted.error.type is RepositoryErrorType.NOT_FOUND:
            return deleted
        return Err(RepositoryError(
            RepositoryErrorType.STORAGE_ERROR,
            "Failed to delete task",
            cause=deleted.error,
        ))

    logger.info("Deleted task %s", task_id)
    return Ok(None)


async def modify_task(
    task_id: str,
    changes: Mapping[str, Any],
    repository: TaskRepository,
    fs: FileSystemAdapter,
) -> Result[Task, RepositoryError]:
    """Apply changes to a stored task under the task's lock.

    Args:
        task_id: ID of the task to modify
        changes: Attribute names mapped to new values, as for update_task()
        repository: Repository holding the task
        fs: Adapter providing the advisory lock

    Returns:
        Ok with the saved task, Err(NOT_FOUND), Err(VALIDATION_ERROR),
        Err(CONCURRENCY_ERROR) if the task is locked, or Err(STORAGE_ERROR)
    """

    async def read_modify_write() -> Result[Task, RepositoryError]:
        found = await repository.find_by_id(task_id)
        if found.is_err():
            return found

        updated = update_task(found.value, changes)
        if updated.is_err():
            error = updated.error
            errors = dict(error.errors)
            if error.type is UpdateTaskErrorType.IMMUTABLE_FIELD_MODIFICATION:
                errors.setdefault(error.field_name, []).append(error.message)
            elif error.type is UpdateTaskErrorType.INVALID_STATUS_TRANSITION:
                errors.setdefault("status", []).append(error.message)
            return Err(RepositoryError(
                RepositoryErrorType.VALIDATION_ERROR,
                error.message,
                cause=error,
                errors=errors,
            ))

        return await repository.save(updated.value)

    result = await fs.with_lock(task_id, read_modify_write)
    if result.is_ok() or isinstance(result.error, RepositoryError):
        return result

    error = result.error
    if isinstance(error, StorageError) and error.type is StorageErrorType.LOCK_ERROR:
        return Err(RepositoryError(
            RepositoryErrorType.CONCURRENCY_ERROR,
            f"Task is being modified elsewhere: {task_id}",
            cause=error,
        ))
    return Err(RepositoryError(
        RepositoryErrorType.STORAGE_ERROR,
        f"Failed to modify task: {error}",
        cause=error,
    ))
