"""Unit tests for command execution and file operations."""

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from pgadvisor.core.exceptions import ExecutionError
from pgadvisor.core.executor import AtomicFileWriter, CommandExecutor


class TestRun:
    """Tests for CommandExecutor.run."""

    def test_captures_output(self, ctx):
        """stdout and the exit code should be captured."""
        with patch("pgadvisor.core.executor.subprocess.run") as mock_run:
            mock_run.return_value = subprocess.CompletedProcess(["nproc"], 0, "8\n", "")
            result = CommandExecutor(ctx).run(["nproc"])

        assert result.success
        assert result.stdout == "8\n"

    def test_nonzero_with_check(self, ctx):
        """A failing command with check=True should raise ExecutionError."""
        with patch("pgadvisor.core.executor.subprocess.run") as mock_run:
            mock_run.return_value = subprocess.CompletedProcess(["false"], 1, "", "bad")
            with pytest.raises(ExecutionError) as exc_info:
                CommandExecutor(ctx).run(["false"])

        assert exc_info.value.return_code == 1
        assert exc_info.value.stderr == "bad"

    def test_nonzero_without_check(self, ctx):
        """check=False should return the failed result."""
        with patch("pgadvisor.core.executor.subprocess.run") as mock_run:
            mock_run.return_value = subprocess.CompletedProcess(["diff"], 1, "-a\n+b\n", "")
            result = CommandExecutor(ctx).run(["diff"], check=False)

        assert result.return_code == 1
        assert not result.success

    def test_missing_binary(self, ctx):
        """A binary that cannot start should raise ExecutionError."""
        with patch("pgadvisor.core.executor.subprocess.run", side_effect=FileNotFoundError("nope")):
            with pytest.raises(ExecutionError) as exc_info:
                CommandExecutor(ctx).run(["nope"], check=False)

        assert "nope" in exc_info.value.stderr

    def test_timeout(self, ctx):
        """A timeout should raise ExecutionError."""
        with patch(
            "pgadvisor.core.executor.subprocess.run",
            side_effect=subprocess.TimeoutExpired(["sleep"], 1),
        ):
            with pytest.raises(ExecutionError, match="timed out"):
                CommandExecutor(ctx).run(["sleep", "5"], timeout=1)

    def test_decoding_errors_replaced(self, ctx):
        """errors= should be passed through to subprocess."""
        with patch("pgadvisor.core.executor.subprocess.run") as mock_run:
            mock_run.return_value = subprocess.CompletedProcess(["diff"], 1, "-a\n+b\n", "")
            CommandExecutor(ctx).run(["diff"], check=False, errors="replace")

        assert mock_run.call_args.kwargs["errors"] == "replace"


class TestFileOperations:
    """Tests for write_file and backup_file."""

    def test_atomic_write_replaces(self, tmp_path: Path):
        """AtomicFileWriter should replace content and leave no temp file."""
        target = tmp_path / "new.conf"
        target.write_text("old")

        with AtomicFileWriter(target).open() as f:
            f.write("new")

        assert target.read_text() == "new"
        assert [p.name for p in tmp_path.iterdir()] == ["new.conf"]

    def test_atomic_write_failure_keeps_target(self, tmp_path: Path):
        """An error while writing should leave the target untouched."""
        target = tmp_path / "new.conf"
        target.write_text("old")

        with pytest.raises(RuntimeError):
            with AtomicFileWriter(target).open() as f:
                f.write("partial")
                raise RuntimeError("interrupted")

        assert target.read_text() == "old"
        assert [p.name for p in tmp_path.iterdir()] == ["new.conf"]

    def test_exclusive_write_refuses_existing(self, ctx, tmp_path: Path):
        """exclusive=True should never replace an existing file."""
        target = tmp_path / "recommended.conf"
        target.write_text("keep")

        with pytest.raises(FileExistsError):
            CommandExecutor(ctx).write_file(target, "other", exclusive=True)

        assert target.read_text() == "keep"

    def test_backup_file(self, ctx, tmp_path: Path):
        """backup_file should copy beside the original with the timestamp."""
        original = tmp_path / "postgresql.conf"
        original.write_text("port = 5432\n")

        backup = CommandExecutor(ctx).backup_file(original, timestamp="20240102_030405")

        assert backup == tmp_path / "postgresql.conf.bak_20240102_030405"
        assert backup.read_text() == "port = 5432\n"
        assert original.read_text() == "port = 5432\n"

    def test_backup_never_overwrites(self, ctx, tmp_path: Path):
        """An existing backup of the same name should get a numbered sibling."""
        original = tmp_path / "postgresql.conf"
        original.write_text("new")
        existing = tmp_path / "postgresql.conf.bak_1"
        existing.write_text("old")

        backup = CommandExecutor(ctx).backup_file(original, timestamp="1")

        assert backup == tmp_path / "postgresql.conf.bak_1_1"
        assert backup.read_text() == "new"
        assert existing.read_text() == "old"

    def test_backup_names_exhausted(self, ctx, tmp_path: Path):
        """Running out of free names should raise FileExistsError."""
        original = tmp_path / "postgresql.conf"
        original.write_text("new")
        (tmp_path / "postgresql.conf.bak_1").write_text("old")
        (tmp_path / "postgresql.conf.bak_1_1").write_text("old")

        with pytest.raises(FileExistsError):
            CommandExecutor(ctx).backup_file(original, timestamp="1", max_attempts=2)
