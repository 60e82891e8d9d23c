"""Tests for the in-memory file system adapter."""

from unittest.mock import patch

import pytest

from jikanicle.errors import StorageErrorType
from jikanicle.memory_storage import MemoryFileSystemAdapter
from jikanicle.result import Ok


async def chunks(*parts):
    for part in parts:
        yield part


class TestMemoryFileSystemAdapter:
    """Test suite for MemoryFileSystemAdapter."""

    @pytest.fixture
    def fs(self):
        return MemoryFileSystemAdapter()

    @pytest.mark.asyncio
    async def test_initial_files(self):
        """Test that initial files and their parents are visible."""
        fs = MemoryFileSystemAdapter({"data/a.json": "{}"})

        assert await fs.read_file("data/a.json") == Ok("{}")
        assert await fs.file_exists("data") == Ok(True)

    @pytest.mark.asyncio
    async def test_write_read_delete(self, fs):
        """Test the basic file life cycle."""
        assert (await fs.write_file("notes/a.txt", "hello")).is_ok()
        assert await fs.read_file("notes/a.txt") == Ok("hello")
        assert (await fs.delete_file("notes/a.txt")).is_ok()

        result = await fs.read_file("notes/a.txt")
        assert result.error.type == StorageErrorType.NOT_FOUND

    @pytest.mark.asyncio
    async def test_paths_are_normalized(self, fs):
        """Test that equivalent spellings address the same file."""
        await fs.write_file("data/./a.txt", "x")
        assert await fs.read_file("data/a.txt") == Ok("x")

    @pytest.mark.asyncio
    async def test_delete_missing(self, fs):
        """Test deleting a file that does not exist."""
        result = await fs.delete_file("nope.txt")
        assert result.error.type == StorageErrorType.NOT_FOUND

    @pytest.mark.asyncio
    async def test_write_under_a_file(self, fs):
        """Test that a file cannot be used as a directory."""
        await fs.write_file("data", "x")

        result = await fs.write_file("data/a.txt", "y")
        assert result.error.type == StorageErrorType.ALREADY_EXISTS

    @pytest.mark.asyncio
    async def test_create_directory_requires_parent(self, fs):
        """Test that create_directory does not create ancestors."""
        result = await fs.create_directory("a/b")
        assert result.error.type == StorageErrorType.NOT_FOUND

        assert (await fs.create_directory("a")).is_ok()
        assert (await fs.create_directory("a/b")).is_ok()

    @pytest.mark.asyncio
    async def test_create_existing_directory(self, fs):
        """Test that an existing directory or file is ALREADY_EXISTS."""
        await fs.create_directory("a")
        await fs.write_file("f", "x")

        assert (await fs.create_directory("a")).error.type == StorageErrorType.ALREADY_EXISTS
        assert (await fs.create_directory("f")).error.type == StorageErrorType.ALREADY_EXISTS

    @pytest.mark.asyncio
    async def test_ensure_directory(self, fs):
        """Test that ensure_directory creates ancestors and is idempotent."""
        assert (await fs.ensure_directory("a/b/c")).is_ok()
        assert (await fs.ensure_directory("a/b/c")).is_ok()
        assert {"a", "a/b", "a/b/c"} <= fs.directories

    @pytest.mark.asyncio
    async def test_list_files(self, fs):
        """Test listing direct children, sorted, with an optional pattern."""
        for name in ("dir/b.txt", "dir/a.txt", "dir/c.json", "dir/sub/d.txt"):
            await fs.write_file(name, "x")

        assert await fs.list_files("dir") == Ok(["a.txt", "b.txt", "c.json", "sub"])
        assert await fs.list_files("dir", "*.txt") == Ok(["a.txt", "b.txt"])

    @pytest.mark.asyncio
    async def test_list_missing_directory(self, fs):
        """Test that listing a missing directory is NOT_FOUND."""
        result = await fs.list_files("nowhere")
        assert result.error.type == StorageErrorType.NOT_FOUND

    @pytest.mark.asyncio
    async def test_path_policy_applies(self, fs):
        """Test that the shared path policy is enforced."""
        assert (await fs.read_file("")).error.type == StorageErrorType.INVALID_PATH
        assert (await fs.write_file("/dev/null", "x")).error.type == StorageErrorType.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_streams(self, fs):
        """Test writing from and reading into byte streams."""
        assert (await fs.write_file_stream("s.txt", chunks(b"ab", "ü".encode("utf-8")))).is_ok()
        assert await fs.read_file("s.txt") == Ok("abü")

        stream = (await fs.read_file_stream("s.txt", chunk_size=2)).unwrap()
        parts = [part async for part in stream]
        assert b"".join(parts) == "abü".encode("utf-8")
        assert parts[0] == b"ab"

    @pytest.mark.asyncio
    async def test_atomic_write(self, fs):
        """Test that an atomic write leaves only the destination file."""
        await fs.write_file("data/t.json", "old")

        assert (await fs.atomic_write_file("data/t.json", "new")).is_ok()
        assert fs.files == {"data/t.json": "new"}

    @pytest.mark.asyncio
    async def test_atomic_write_failure_cleans_up(self, fs):
        """Test that a failed rename keeps old content and drops the temp file."""
        await fs.write_file("data/t.json", "old")

        with patch.object(fs, "_rename", side_effect=OSError("boom")):
            result = await fs.atomic_write_file("data/t.json", "new")

        assert result.error.type == StorageErrorType.ATOMIC_OPERATION_FAILED
        assert fs.files == {"data/t.json": "old"}

    @pytest.mark.asyncio
    async def test_adapters_have_separate_locks(self):
        """Test that locks are scoped to one adapter instance."""
        first, second = MemoryFileSystemAdapter(), MemoryFileSystemAdapter()
        await first.acquire_lock("x")

        assert (await second.acquire_lock("x")).is_ok()
