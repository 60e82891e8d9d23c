"""Storage layer for jikanicle.

This module provides the abstract FileSystemAdapter interface, the only
boundary through which the rest of the package touches files, and the
LocalFileSystemAdapter implementation backed by aiofiles.

Every adapter operation is a coroutine returning a Result; expected
failures (missing file, bad path, lock contention) come back as
Err(StorageError) and unexpected exceptions from I/O primitives are
converted to IO_ERROR rather than raised.
"""

import logging
import os
import re
from abc import ABC, abstractmethod
from typing import AsyncIterable, AsyncIterator, Awaitable, Callable, FrozenSet, List, Optional, Sequence, TypeVar

import aiofiles
import aiofiles.os

from jikanicle.errors import StorageError, StorageErrorType, storage_error_from_os_error
from jikanicle.locks import LockManager
from jikanicle.result import Err, Ok, Result

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_RESTRICTED_PREFIXES = ("/proc/", "/sys/", "/dev/")
TEMP_SUFFIX = ".tmp"

_INVALID_PATH_CHARS = re.compile(r'[<>:"|?*\x00]')


def glob_to_regex(pattern: str) -> "re.Pattern[str]":
    """Compile a simple glob where "*" matches any run of characters."""
    return re.compile("".join(".*" if ch == "*" else re.escape(ch) for ch in pattern))


def filter_names(names: Sequence[str], pattern: Optional[str]) -> List[str]:
    """Keep the names whose base name matches pattern (all if None)."""
    if pattern is None:
        return list(names)
    regex = glob_to_regex(pattern)
    return [name for name in names if regex.fullmatch(os.path.basename(name))]


class FileSystemAdapter(ABC):
    """Abstract base class for file system adapters.

    Subclasses implement the primitive file operations. Locking, the
    with_lock helper and atomic writes are shared and built on top of them.

    Attributes:
        restricted_prefixes: Path prefixes reported as PERMISSION_DENIED
    """

    def __init__(self, restricted_prefixes: Sequence[str] = DEFAULT_RESTRICTED_PREFIXES):
        self.restricted_prefixes = tuple(restricted_prefixes)
        self._lock_manager = LockManager()

    def validate_path(self, path: str) -> Optional[StorageError]:
        """Check a path against the path policy.

        Args:
            path: Path to check

        Returns:
            StorageError describing the violation, or None if the path is usable
        """
        if not isinstance(path, str) or path == "":
            return StorageError(StorageErrorType.INVALID_PATH, "Empty path is invalid", str(path))
        if _INVALID_PATH_CHARS.search(path):
            return StorageError(StorageErrorType.INVALID_PATH, "Path contains invalid characters", path)
        if any(path.startswith(prefix) for prefix in self.restricted_prefixes):
            return StorageError(StorageErrorType.PERMISSION_DENIED, "Insufficient permissions", path)
        return None

    @abstractmethod
    async def read_file(self, path: str) -> Result[str, StorageError]:
        """Read a whole text file.

        Args:
            path: File to read

        Returns:
            Ok with the file content
        """
        pass

    @abstractmethod
    async def write_file(self, path: str, content: str) -> Result[None, StorageError]:
        """Write a text file, creating parent directories as needed.

        Overwrites an existing file. Not atomic; see atomic_write_file().
        """
        pass

    @abstractmethod
    async def delete_file(self, path: str) -> Result[None, StorageError]:
        """Delete a file. NOT_FOUND if it does not exist."""
        pass

    @abstractmethod
    async def file_exists(self, path: str) -> Result[bool, StorageError]:
        """Report whether anything exists at path. Fails only on an invalid path."""
        pass

    @abstractmethod
    async def create_directory(self, path: str) -> Result[None, StorageError]:
        """Create a single directory. ALREADY_EXISTS if the path is occupied."""
        pass

    @abstractmethod
    async def ensure_directory(self, path: str) -> Result[None, StorageError]:
        """Create a directory and its ancestors if missing. Idempotent."""
        pass

    @abstractmethod
    async def list_files(self, directory: str, pattern: Optional[str] = None) -> Result[List[str], StorageError]:
        """List entry names in a directory.

        Args:
            directory: Directory to list
            pattern: Optional glob applied to base names ("*" only)

        Returns:
            Ok with the sorted entry names, or Err(NOT_FOUND) for a missing directory
        """
        pass

    @abstractmethod
    async def read_file_stream(
        self, path: str, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> Result[AsyncIterator[bytes], StorageError]:
        """Open a file for chunked reading.

        Returns:
            Ok with an async iterator of byte chunks
        """
        pass

    @abstractmethod
    async def write_file_stream(self, path: str, stream: AsyncIterable[bytes]) -> Result[None, StorageError]:
        """Write a file from an async iterable of byte chunks."""
        pass

    @abstractmethod
    async def _rename(self, source: str, destination: str) -> None:
        """Move source over destination. Raises on failure."""
        pass

    @abstractmethod
    async def _remove(self, path: str) -> None:
        """Remove a file. Raises on failure."""
        pass

    @property
    def locks(self) -> FrozenSet[str]:
        """Resource ids currently locked on this adapter."""
        return self._lock_manager.locks

    async def acquire_lock(self, resource_id: str) -> Result[None, StorageError]:
        """Take the advisory lock on resource_id without waiting.

        Args:
            resource_id: Lock to take

        Returns:
            Ok(None), or Err(LOCK_ERROR) if it is already held
        """
        return await self._lock_manager.acquire(resource_id)

    async def release_lock(self, resource_id: str) -> Result[None, StorageError]:
        """Release the advisory lock on resource_id.

        Args:
            resource_id: Lock to release

        Returns:
            Ok(None), or Err(LOCK_ERROR) if it is not held
        """
        return await self._lock_manager.release(resource_id)

    async def _discard_temp(self, temp_path: str) -> None:
        try:
            await self._remove(temp_path)
        except FileNotFoundError:
            pass
        except Exception as cleanup_error:
            logger.warning("Could not remove temp file %s: %s", temp_path, cleanup_error)

    async def atomic_write_file(self, path: str, content: str) -> Result[None, StorageError]:
        """Replace a file so readers never see partial content.

        The content is written to "<path>.tmp" which is then renamed over
        path. If either step fails the temp file is removed on a best-effort
        basis; a failed rename is reported as ATOMIC_OPERATION_FAILED.

        Args:
            path: Destination file
            content: Full new content

        Returns:
            Ok(None), the temp write's own error, or Err(ATOMIC_OPERATION_FAILED)
        """
        path_error = self.validate_path(path)
        if path_error is not None:
            return Err(path_error)

        temp_path = path + TEMP_SUFFIX
        write_result = await self.write_file(temp_path, content)
        if write_result.is_err():
            # The temp file may exist with partial content
            await self._discard_temp(temp_path)
            return write_result

        try:
            await self._rename(temp_path, path)
        except Exception as e:
            await self._discard_temp(temp_path)
            return Err(StorageError(
                StorageErrorType.ATOMIC_OPERATION_FAILED,
                "Atomic file write failed",
                path,
                cause=e,
            ))

        logger.debug("Atomically wrote %s", path)
        return Ok(None)

    async def with_lock(
        self,
        resource_id: str,
        operation: Callable[[], Awaitable[Result[T, object]]],
    ) -> Result[T, object]:
        """Run operation while holding the lock on resource_id.

        The lock is released on every exit path. A failed release is logged
        and does not replace the operation's outcome.

        Args:
            resource_id: Lock to hold
            operation: Zero-argument coroutine function returning a Result

        Returns:
            The operation's Result, Err(LOCK_ERROR) if the lock is held, or
            Err(IO_ERROR) wrapping an exception raised by the operation
        """
        lock_result = await self.acquire_lock(resource_id)
        if lock_result.is_err():
            return lock_result

        try:
            return await operation()
        except Exception as e:
            logger.debug("Operation under lock %s raised %r", resource_id, e)
            return Err(StorageError(
                StorageErrorType.IO_ERROR,
                "Operation inside lock failed",
                resource_id,
                cause=e,
            ))
        finally:
            release_result = await self.release_lock(resource_id)
            if release_result.is_err():
                logger.warning("Failed to release lock %s: %s", resource_id, release_result.error.message)


class LocalFileSystemAdapter(FileSystemAdapter):
    """FileSystemAdapter over the real file system.

    File contents are read and written through aiofiles so the event loop
    is never blocked on disk I/O.
    """

    async def read_file(self, path: str) -> Result[str, StorageError]:
        path_error = self.validate_path(path)
        if path_error is not None:
            return Err(path_error)

        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
        except Exception as e:
            return Err(storage_error_from_os_error(e, path))

        logger.debug("Read %s (%d chars)", path, len(content))
        return Ok(content)

    async def write_file(self, path: str, content: str) -> Result[None, StorageError]:
        path_error = self.validate_path(path)
        if path_error is not None:
            return Err(path_error)

        try:
            parent = os.path.dirname(path)
            if parent:
                await aiofiles.os.makedirs(parent, exist_ok=True)
            async with aiofiles.open(path, "w", encoding="utf-8") as f:
                await f.write(content)
        except Exception as e:
            return Err(storage_error_from_os_error(e, path))

        logger.debug("Wrote %s (%d chars)", path, len(content))
        return Ok(None)

    async def delete_file(self, path: str) -> Result[None, StorageError]:
        path_error = self.validate_path(path)
        if path_error is not None:
            return Err(path_error)

        try:
            await aiofiles.os.remove(path)
        except Exception as e:
            return Err(storage_error_from_os_error(e, path))

        logger.debug("Deleted %s", path)
        return Ok(None)

    async def file_exists(self, path: str) -> Result[bool, StorageError]:
        path_error = self.validate_path(path)
        if path_error is not None:
            return Err(path_error)

        try:
            return Ok(await aiofiles.os.path.exists(path))
        except Exception as e:
            return Err(storage_error_from_os_error(e, path))

    async def create_directory(self, path: str) -> Result[None, StorageError]:
        path_error = self.validate_path(path)
        if path_error is not None:
            return Err(path_error)

        try:
            await aiofiles.os.mkdir(path)
        except FileExistsError:
            kind = "Directory" if await aiofiles.os.path.isdir(path) else "A file"
            return Err(StorageError(
                StorageErrorType.ALREADY_EXISTS,
                f"{kind} already exists at this path",
                path,
            ))
        except Exception as e:
            return Err(storage_error_from_os_error(e, path))
        return Ok(None)

    async def ensure_directory(self, path: str) -> Result[None, StorageError]:
        path_error = self.validate_path(path)
        if path_error is not None:
            return Err(path_error)

        try:
            await aiofiles.os.makedirs(path, exist_ok=True)
        except Exception as e:
            return Err(storage_error_from_os_error(e, path))
        return Ok(None)

    async def list_files(self, directory: str, pattern: Optional[str] = None) -> Result[List[str], StorageError]:
        path_error = self.validate_path(directory)
        if path_error is not None:
            return Err(path_error)

        try:
            names = await aiofiles.os.listdir(directory)
        except Exception as e:
            return Err(storage_error_from_os_error(e, directory))
        return Ok(sorted(filter_names(names, pattern)))

    async def read_file_stream(
        self, path: str, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> Result[AsyncIterator[bytes], StorageError]:
        path_error = self.validate_path(path)
        if path_error is not None:
            return Err(path_error)

        try:
            if await aiofiles.os.path.isdir(path):
                return Err(StorageError(StorageErrorType.IO_ERROR, "Path is a directory", path))
            # Surfaces NOT_FOUND / PERMISSION_DENIED before iteration starts
            await aiofiles.os.stat(path)
        except Exception as e:
            return Err(storage_error_from_os_error(e, path))

        return Ok(self._iter_chunks(path, chunk_size))

    async def _iter_chunks(self, path: str, chunk_size: int) -> AsyncIterator[bytes]:
        async with aiofiles.open(path, "rb") as f:
            while True:
                chunk = await f.read(chunk_size)
                if not chunk:
                    break
                yield chunk

    async def write_file_stream(self, path: str, stream: AsyncIterable[bytes]) -> Result[None, StorageError]:
        path_error = self.validate_path(path)
        if path_error is not None:
            return Err(path_error)

        written = 0
        try:
            parent = os.path.dirname(path)
            if parent:
                await aiofiles.os.makedirs(parent, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                async for chunk in stream:
                    await f.write(chunk)
                    written += len(chunk)
        except Exception as e:
            return Err(storage_error_from_os_error(e, path))

        logger.debug("Streamed %d bytes to %s", written, path)
        return Ok(None)

    async def _rename(self, source: str, destination: str) -> None:
        await aiofiles.os.replace(source, destination)

    async def _remove(self, path: str) -> None:
        await aiofiles.os.remove(path)
