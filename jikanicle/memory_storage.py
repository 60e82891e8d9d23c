"""In-memory FileSystemAdapter.

Simulates a file system in a dict so repositories can be exercised
without touching disk. Paths are treated as POSIX paths.
"""

import posixpath
from typing import AsyncIterable, AsyncIterator, Dict, List, Optional, Sequence, Set

from jikanicle.errors import StorageError, StorageErrorType
from jikanicle.result import Err, Ok, Result
from jikanicle.storage import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_RESTRICTED_PREFIXES,
    FileSystemAdapter,
    filter_names,
)

_ROOTS = ("", ".", "/")


def _normalize(path: str) -> str:
    return posixpath.normpath(path)


def _parent(path: str) -> str:
    return posixpath.dirname(path)


class MemoryFileSystemAdapter(FileSystemAdapter):
    """FileSystemAdapter holding files and directories in memory.

    Attributes:
        files: Mapping of normalized path to text content
        directories: Set of normalized directory paths
    """

    def __init__(
        self,
        initial_files: Optional[Dict[str, str]] = None,
        restricted_prefixes: Sequence[str] = DEFAULT_RESTRICTED_PREFIXES,
    ):
        super().__init__(restricted_prefixes)
        self.files: Dict[str, str] = {}
        self.directories: Set[str] = set()
        for path, content in (initial_files or {}).items():
            key = _normalize(path)
            self._make_parents(key)
            self.files[key] = content

    def _is_dir(self, key: str) -> bool:
        return key in _ROOTS or key in self.directories

    def _make_parents(self, key: str) -> Optional[StorageError]:
        parent = _parent(key)
        missing = []
        while not self._is_dir(parent):
            if parent in self.files:
                return StorageError(
                    StorageErrorType.ALREADY_EXISTS,
                    "A file already exists where a directory is needed",
                    parent,
                )
            missing.append(parent)
            parent = _parent(parent)
        self.directories.update(missing)
        return None

    async def read_file(self, path: str) -> Result[str, StorageError]:
        path_error = self.validate_path(path)
        if path_error is not None:
            return Err(path_error)

        key = _normalize(path)
        if key not in self.files:
            if self._is_dir(key):
                return Err(StorageError(StorageErrorType.IO_ERROR, "Path is a directory", path))
            return Err(StorageError(StorageErrorType.NOT_FOUND, "File not found", path))
        return Ok(self.files[key])

    async def write_file(self, path: str, content: str) -> Result[None, StorageError]:
        path_error = self.validate_path(path)
        if path_error is not None:
            return Err(path_error)

        key = _normalize(path)
        if self._is_dir(key):
            return Err(StorageError(StorageErrorType.IO_ERROR, "Path is a directory", path))
        parent_error = self._make_parents(key)
        if parent_error is not None:
            return Err(parent_error)
        self.files[key] = content
        return Ok(None)

    async def delete_file(self, path: str) -> Result[None, StorageError]:
        path_error = self.validate_path(path)
        if path_error is not None:
            return Err(path_error)

        key = _normalize(path)
        if key not in self.files:
            return Err(StorageError(StorageErrorType.NOT_FOUND, "File not found", path))
        del self.files[key]
        return Ok(None)

    async def file_exists(self, path: str) -> Result[bool, StorageError]:
        path_error = self.validate_path(path)
        if path_error is not None:
            return Err(path_error)

        key = _normalize(path)
        return Ok(key in self.files or self._is_dir(key))

    async def create_directory(self, path: str) -> Result[None, StorageError]:
        path_error = self.validate_path(path)
        if path_error is not None:
            return Err(path_error)

        key = _normalize(path)
        if key in self.files:
            return Err(StorageError(StorageErrorType.ALREADY_EXISTS, "A file already exists at this path", path))
        if self._is_dir(key):
            return Err(StorageError(StorageErrorType.ALREADY_EXISTS, "Directory already exists at this path", path))
        if not self._is_dir(_parent(key)):
            return Err(StorageError(StorageErrorType.NOT_FOUND, "Parent directory not found", path))
        self.directories.add(key)
        return Ok(None)

    async def ensure_directory(self, path: str) -> Result[None, StorageError]:
        path_error = self.validate_path(path)
        if path_error is not None:
            return Err(path_error)

        key = _normalize(path)
        if key in self.files:
            return Err(StorageError(StorageErrorType.ALREADY_EXISTS, "A file already exists at this path", path))
        parent_error = self._make_parents(key)
        if parent_error is not None:
            return Err(parent_error)
        if key not in _ROOTS:
            self.directories.add(key)
        return Ok(None)

    async def list_files(self, directory: str, pattern: Optional[str] = None) -> Result[List[str], StorageError]:
        path_error = self.validate_path(directory)
        if path_error is not None:
            return Err(path_error)

        key = _normalize(directory)
        if not self._is_dir(key):
            return Err(StorageError(StorageErrorType.NOT_FOUND, "Directory not found", directory))

        parent_key = "" if key == "." else key
        names = [
            posixpath.basename(entry)
            for entry in list(self.files) + list(self.directories)
            if _parent(entry) == parent_key
        ]
        return Ok(sorted(filter_names(names, pattern)))

    async def read_file_stream(
        self, path: str, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> Result[AsyncIterator[bytes], StorageError]:
        read_result = await self.read_file(path)
        if read_result.is_err():
            return read_result
        return Ok(self._iter_chunks(read_result.value.encode("utf-8"), chunk_size))

    async def _iter_chunks(self, data: bytes, chunk_size: int) -> AsyncIterator[bytes]:
        for offset in range(0, len(data), chunk_size):
            yield data[offset:offset + chunk_size]

    async def write_file_stream(self, path: str, stream: AsyncIterable[bytes]) -> Result[None, StorageError]:
        path_error = self.validate_path(path)
        if path_error is not None:
            return Err(path_error)

        try:
            chunks = [chunk async for chunk in stream]
            content = b"".join(chunks).decode("utf-8")
        except Exception as e:
            return Err(StorageError(
                StorageErrorType.IO_ERROR,
                f"Failed to consume stream: {e}",
                path,
                cause=e,
            ))
        return await self.write_file(path, content)

    async def _rename(self, source: str, destination: str) -> None:
        source_key = _normalize(source)
        destination_key = _normalize(destination)
        if source_key not in self.files:
            raise FileNotFoundError(source)
        if self._is_dir(destination_key):
            raise IsADirectoryError(destination)
        self.files[destination_key] = self.files.pop(source_key)

    async def _remove(self, path: str) -> None:
        key = _normalize(path)
        if key not in self.files:
            raise FileNotFoundError(path)
        del self.files[key]
