"""Error taxonomies for jikanicle.

Three independent tiers:
- StorageError: raised by file system adapters (never leaves the repository)
- SerializationError: raised while converting tasks to and from JSON
- RepositoryError: the only error type callers of a TaskRepository see
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class StorageErrorType(Enum):
    """Kinds of storage failure."""

    NOT_FOUND = "NOT_FOUND"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    IO_ERROR = "IO_ERROR"
    LOCK_ERROR = "LOCK_ERROR"
    INVALID_PATH = "INVALID_PATH"
    ATOMIC_OPERATION_FAILED = "ATOMIC_OPERATION_FAILED"


class RepositoryErrorType(Enum):
    """Kinds of repository failure."""

    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    STORAGE_ERROR = "STORAGE_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONCURRENCY_ERROR = "CONCURRENCY_ERROR"


class SerializationErrorType(Enum):
    """Direction in which a conversion failed."""

    SERIALIZATION = "serialization"
    DESERIALIZATION = "deserialization"


@dataclass(frozen=True)
class StorageError:
    """Failure reported by a FileSystemAdapter.

    Attributes:
        type: Machine-readable error kind
        message: Human-readable description
        path: Offending path, or the resource id for LOCK_ERROR
        cause: Underlying exception, if any
    """

    type: StorageErrorType
    message: str
    path: str
    cause: Optional[Any] = None

    @property
    def resource_id(self) -> str:
        return self.path

    def __str__(self) -> str:
        return f"{self.type.value}: {self.message} ({self.path})"


@dataclass(frozen=True)
class SerializationError:
    """Failure converting a task to or from its wire form."""

    type: SerializationErrorType
    message: str
    cause: Optional[Any] = None

    def __str__(self) -> str:
        return f"{self.type.value}: {self.message}"


@dataclass(frozen=True)
class RepositoryError:
    """Failure reported at the TaskRepository boundary.

    Attributes:
        type: Machine-readable error kind
        message: Human-readable description
        cause: Wrapped StorageError or SerializationError for STORAGE_ERROR
        errors: Field error map for VALIDATION_ERROR
    """

    type: RepositoryErrorType
    message: str
    cause: Optional[Any] = None
    errors: Dict[str, List[str]] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.type.value}: {self.message}"


def storage_error_from_os_error(error: BaseException, path: str) -> StorageError:
    """Translate an exception from an I/O primitive into a StorageError.

    Args:
        error: Exception raised by the underlying call
        path: Path the call was operating on

    Returns:
        StorageError keyed on the errno of the exception
    """
    if isinstance(error, FileNotFoundError):
        return StorageError(StorageErrorType.NOT_FOUND, "File or directory not found", path)
    if isinstance(error, PermissionError):
        return StorageError(StorageErrorType.PERMISSION_DENIED, "Access to file or directory denied", path)
    if isinstance(error, FileExistsError):
        return StorageError(StorageErrorType.ALREADY_EXISTS, "File or directory already exists", path)
    if isinstance(error, OSError):
        return StorageError(StorageErrorType.IO_ERROR, f"I/O error: {error}", path, cause=error)
    return StorageError(StorageErrorType.IO_ERROR, f"Unexpected error: {error!r}", path, cause=error)


def map_storage_error(error: StorageError) -> RepositoryError:
    """Translate a StorageError into the coarser RepositoryError taxonomy."""
    if error.type is StorageErrorType.NOT_FOUND:
        return RepositoryError(RepositoryErrorType.NOT_FOUND, f"Task not found: {error.path}")
    if error.type is StorageErrorType.ALREADY_EXISTS:
        return RepositoryError(RepositoryErrorType.ALREADY_EXISTS, f"Task already exists: {error.path}")
    return RepositoryError(
        RepositoryErrorType.STORAGE_ERROR,
        f"Storage operation failed: {error.message}",
        cause=error,
    )


def map_serialization_error(error: SerializationError) -> RepositoryError:
    """Wrap a SerializationError as a STORAGE_ERROR."""
    if error.type is SerializationErrorType.SERIALIZATION:
        message = f"Failed to serialize task: {error.message}"
    else:
        message = f"Failed to deserialize task: {error.message}"
    return RepositoryError(RepositoryErrorType.STORAGE_ERROR, message, cause=error)
