"""Comprehensive tests for CLI module."""

import json
import logging
from io import StringIO
from unittest.mock import patch

import pytest

from jikanicle.array_repository import JsonArrayTaskRepository
from jikanicle.cli import (
    build_repository,
    cmd_add,
    cmd_cancel,
    cmd_delete,
    cmd_done,
    cmd_list,
    cmd_show,
    cmd_start,
    create_parser,
    main,
)
from jikanicle.config import AppConfig
from jikanicle.factories import create_task
from jikanicle.log import LOGGER_NAME
from jikanicle.memory_storage import MemoryFileSystemAdapter
from jikanicle.models import Category, Priority, Status
from jikanicle.repository import FileTaskRepository
from jikanicle.serialization import to_serializable


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


class TestParser:
    """Tests for the argument parser."""

    def test_create_parser(self):
        """Test that parser is created with correct subcommands."""
        parser = create_parser()
        assert parser.prog == "jikanicle"

        with pytest.raises(SystemExit):
            parser.parse_args(["--help"])

    def test_parser_add_defaults(self):
        """Test parsing 'add' with only a name."""
        args = create_parser().parse_args(["add", "Test task"])

        assert args.command == "add"
        assert args.name == "Test task"
        assert args.category == "OTHER"
        assert args.priority == "MEDIUM"
        assert args.estimate == 0
        assert args.tag == []

    def test_parser_add_options(self):
        """Test parsing 'add' with every option."""
        args = create_parser().parse_args([
            "add", "Study", "--category", "LEARNING", "--priority", "HIGH",
            "--estimate", "45", "--description", "Chapter 3", "--tag", "book", "--tag", "evening",
        ])

        assert args.category == "LEARNING"
        assert args.priority == "HIGH"
        assert args.estimate == 45.0
        assert args.description == "Chapter 3"
        assert args.tag == ["book", "evening"]

    def test_parser_rejects_unknown_priority(self):
        """Test that choices are enforced."""
        with patch("sys.stderr", new_callable=StringIO):
            with pytest.raises(SystemExit):
                create_parser().parse_args(["add", "x", "--priority", "urgent"])

    def test_parser_list_filters(self):
        """Test parsing 'list' filters."""
        args = create_parser().parse_args([
            "list", "--status", "NOT_STARTED", "--status", "IN_PROGRESS", "--search", "report",
        ])

        assert args.status == ["NOT_STARTED", "IN_PROGRESS"]
        assert args.search == "report"
        assert args.category is None

    @pytest.mark.parametrize("command", ["show", "start", "done", "cancel", "delete"])
    def test_parser_id_commands(self, command):
        """Test that id-taking commands parse their argument."""
        args = create_parser().parse_args([command, "abc"])
        assert args.command == command
        assert args.id == "abc"

    def test_global_options(self):
        """Test --data-dir and --verbose."""
        args = create_parser().parse_args(["--data-dir", "/tmp/x", "-v", "list"])
        assert args.data_dir == "/tmp/x"
        assert args.verbose is True


class TestBuildRepository:
    """Tests for build_repository."""

    def test_file_storage(self):
        """Test that the default storage is one file per task."""
        repo = build_repository(AppConfig(data_dir="d", file_extension=".task"), MemoryFileSystemAdapter())

        assert isinstance(repo, FileTaskRepository)
        assert repo.file_extension == ".task"

    def test_array_storage(self):
        """Test that array storage uses a single tasks.json file."""
        repo = build_repository(AppConfig(data_dir="d", storage="array"), MemoryFileSystemAdapter())

        assert isinstance(repo, JsonArrayTaskRepository)
        assert repo.file_path.endswith("tasks.json")


class TestCommandHandlers:
    """Tests for the command handlers."""

    @pytest.fixture
    def fs(self):
        return MemoryFileSystemAdapter()

    @pytest.fixture
    def repo(self, fs):
        return FileTaskRepository(fs, "data")

    @pytest.fixture
    def parser(self):
        return create_parser()

    async def add(self, parser, repo, fs, *argv):
        with patch("sys.stdout", new_callable=StringIO) as mock_stdout:
            assert await cmd_add(parser.parse_args(["add", *argv]), repo, fs) == 0
        return mock_stdout.getvalue().split()[2]

    @pytest.mark.asyncio
    async def test_cmd_add(self, parser, repo, fs):
        """Test adding a task."""
        args = parser.parse_args(["add", "Buy groceries", "--priority", "HIGH", "--category", "HOUSEHOLD"])

        with patch("sys.stdout", new_callable=StringIO) as mock_stdout:
            result = await cmd_add(args, repo, fs)

        assert result == 0
        output = mock_stdout.getvalue()
        assert output.startswith("Task added: ")
        assert "Buy groceries [HIGH]" in output

        tasks = (await repo.find_all()).unwrap()
        assert len(tasks) == 1
        assert tasks[0].priority == Priority.HIGH
        assert tasks[0].category == Category.HOUSEHOLD

    @pytest.mark.asyncio
    async def test_cmd_add_invalid(self, parser, repo, fs):
        """Test that invalid input is reported on stderr."""
        args = parser.parse_args(["add", "", "--estimate", "-5"])

        with patch("sys.stderr", new_callable=StringIO) as mock_stderr:
            result = await cmd_add(args, repo, fs)

        assert result == 1
        assert "Error:" in mock_stderr.getvalue()
        assert "name" in mock_stderr.getvalue()
        assert (await repo.count()).unwrap() == 0

    @pytest.mark.asyncio
    async def test_cmd_list_empty(self, parser, repo, fs):
        """Test listing with no tasks."""
        with patch("sys.stdout", new_callable=StringIO) as mock_stdout:
            result = await cmd_list(parser.parse_args(["list"]), repo, fs)

        assert result == 0
        assert "No tasks found." in mock_stdout.getvalue()

    @pytest.mark.asyncio
    async def test_cmd_list_with_filters(self, parser, repo, fs):
        """Test listing with a status filter and text search."""
        first = await self.add(parser, repo, fs, "Write report", "--tag", "work")
        await self.add(parser, repo, fs, "Walk dog")
        with patch("sys.stdout", new_callable=StringIO):
            await cmd_start(parser.parse_args(["start", first]), repo, fs)

        with patch("sys.stdout", new_callable=StringIO) as mock_stdout:
            await cmd_list(parser.parse_args(["list", "--status", "IN_PROGRESS"]), repo, fs)
        output = mock_stdout.getvalue()
        assert f"[>] {first} Write report [MEDIUM] (IN_PROGRESS)" in output
        assert "Walk dog" not in output

        with patch("sys.stdout", new_callable=StringIO) as mock_stdout:
            await cmd_list(parser.parse_args(["list", "--search", "DOG"]), repo, fs)
        assert "Walk dog" in mock_stdout.getvalue()
        assert "Write report" not in mock_stdout.getvalue()

    @pytest.mark.asyncio
    async def test_cmd_list_orders_mixed_timestamp_forms(self, parser, repo, fs):
        """Test that Z-suffixed and offset-less createdAt values sort together."""
        for task_id, name, created in [
            ("late", "Late task", "2024-01-02T00:00:00Z"),
            ("early", "Early task", "2024-01-01T00:00:00"),
        ]:
            data = to_serializable(create_task(name, 5, Category.OTHER, id=task_id).unwrap())
            data["createdAt"] = created
            await fs.write_file(f"data/{task_id}.json", json.dumps(data))

        with patch("sys.stdout", new_callable=StringIO) as mock_stdout:
            assert await cmd_list(parser.parse_args(["list"]), repo, fs) == 0

        output = mock_stdout.getvalue()
        assert output.index("Early task") < output.index("Late task")

    @pytest.mark.asyncio
    async def test_cmd_show(self, parser, repo, fs):
        """Test showing one task in detail."""
        task_id = await self.add(parser, repo, fs, "Read", "--description", "Novel", "--tag", "book")

        with patch("sys.stdout", new_callable=StringIO) as mock_stdout:
            result = await cmd_show(parser.parse_args(["show", task_id]), repo, fs)

        assert result == 0
        output = mock_stdout.getvalue()
        assert "Notes:     Novel" in output
        assert "Tags:      book" in output
        assert "Completed:" not in output

    @pytest.mark.asyncio
    async def test_status_commands(self, parser, repo, fs):
        """Test done then cancel, and that a cancelled task cannot restart."""
        task_id = await self.add(parser, repo, fs, "Exercise")

        with patch("sys.stdout", new_callable=StringIO) as mock_stdout:
            assert await cmd_done(parser.parse_args(["done", task_id]), repo, fs) == 0
        assert f"Task {task_id} is now COMPLETED: Exercise" in mock_stdout.getvalue()
        assert (await repo.find_by_id(task_id)).unwrap().completed_at is not None

        with patch("sys.stdout", new_callable=StringIO):
            assert await cmd_cancel(parser.parse_args(["cancel", task_id]), repo, fs) == 0
        assert (await repo.find_by_id(task_id)).unwrap().status == Status.CANCELLED

        with patch("sys.stderr", new_callable=StringIO) as mock_stderr:
            assert await cmd_start(parser.parse_args(["start", task_id]), repo, fs) == 1
        assert "cancelled task cannot be resumed" in mock_stderr.getvalue()

    @pytest.mark.asyncio
    async def test_cmd_delete(self, parser, repo, fs):
        """Test deleting a task and then deleting it again."""
        task_id = await self.add(parser, repo, fs, "Temporary")

        with patch("sys.stdout", new_callable=StringIO) as mock_stdout:
            assert await cmd_delete(parser.parse_args(["delete", task_id]), repo, fs) == 0
        assert f"Task {task_id} deleted." in mock_stdout.getvalue()

        with patch("sys.stderr", new_callable=StringIO) as mock_stderr:
            assert await cmd_delete(parser.parse_args(["delete", task_id]), repo, fs) == 1
        assert "Error: Task not found" in mock_stderr.getvalue()

    @pytest.mark.asyncio
    async def test_unknown_id(self, parser, repo, fs):
        """Test that commands on an unknown id fail with exit code 1."""
        with patch("sys.stderr", new_callable=StringIO) as mock_stderr:
            assert await cmd_show(parser.parse_args(["show", "missing"]), repo, fs) == 1
            assert await cmd_done(parser.parse_args(["done", "missing"]), repo, fs) == 1
        assert mock_stderr.getvalue().count("Error:") == 2


class TestMain:
    """Tests for main()."""

    @pytest.fixture(autouse=True)
    def isolated_env(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        for name in ("JIKANICLE_DATA_DIR", "JIKANICLE_STORAGE", "JIKANICLE_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

    def test_main_no_command(self):
        """Test main with no command prints help."""
        with patch("sys.stdout", new_callable=StringIO) as mock_stdout:
            result = main([])

        assert result == 1
        assert "usage:" in mock_stdout.getvalue()

    def test_main_add_and_list(self, tmp_path):
        """Test that main persists tasks under --data-dir."""
        data_dir = str(tmp_path / "tasks")

        with patch("sys.stdout", new_callable=StringIO):
            assert main(["--data-dir", data_dir, "add", "Test task"]) == 0
        with patch("sys.stdout", new_callable=StringIO) as mock_stdout:
            assert main(["--data-dir", data_dir, "list"]) == 0

        assert "Test task [MEDIUM] (NOT_STARTED)" in mock_stdout.getvalue()
        assert len(list((tmp_path / "tasks").glob("*.json"))) == 1

    def test_main_uses_config_file(self, tmp_path):
        """Test that the config file in the working directory is honoured."""
        (tmp_path / ".jikaniclerc").write_text(
            '{"repository": {"dataDirectory": "store", "storage": "array"}}', encoding="utf-8"
        )

        with patch("sys.stdout", new_callable=StringIO):
            assert main(["add", "From config"]) == 0

        assert (tmp_path / "store" / "tasks.json").is_file()

    def test_main_invalid_config(self, tmp_path):
        """Test that a broken config file is reported."""
        (tmp_path / "jikanicle.config.json").write_text("{broken", encoding="utf-8")

        with patch("sys.stderr", new_callable=StringIO) as mock_stderr:
            assert main(["list"]) == 1
        assert "Error:" in mock_stderr.getvalue()
