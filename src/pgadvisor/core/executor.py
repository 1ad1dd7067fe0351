"""Command execution and file operations.

Provides:
- Safe command execution with output capture
- Atomic file writes (temp file + rename)
- Timestamped file backups
"""

import contextlib
import os
import secrets
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Generator, Optional

from pgadvisor.core.context import ExecutionContext
from pgadvisor.core.exceptions import ExecutionError


@dataclass
class CommandResult:
    """Result of a command execution."""
    command: list[str]
    return_code: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        """Check if command succeeded."""
        return self.return_code == 0


class AtomicFileWriter:
    """Atomic file writer using temp file and rename.

    Ensures the target is either completely written or not modified at all.
    """

    def __init__(self, target_path: Path, permissions: int = 0o644) -> None:
        self.target_path = Path(target_path)
        self.permissions = permissions

    @contextlib.contextmanager
    def open(self, mode: str = "w") -> Generator:
        """Open for atomic writing.

        Usage:
            with AtomicFileWriter(path).open() as f:
                f.write("content")
            # File is atomically replaced here
        """
        random_suffix = secrets.token_hex(8)
        tmp_path = self.target_path.with_name(
            f".{self.target_path.name}.tmp_{random_suffix}"
        )

        success = False
        fd = None

        try:
            fd = os.open(
                tmp_path,
                os.O_WRONLY | os.O_CREAT | os.O_EXCL,
                self.permissions,
            )

            with os.fdopen(fd, mode) as f:
                fd = None  # fdopen takes ownership
                yield f
                f.flush()
                os.fsync(f.fileno())

            os.rename(tmp_path, self.target_path)
            success = True
        finally:
            if fd is not None:
                os.close(fd)
            if not success and tmp_path.exists():
                tmp_path.unlink()


class CommandExecutor:
    """Command execution with output capture.

    Features:
    - Output capture for processing
    - Timeout support
    - Start failures and timeouts reported as ExecutionError
    """

    def __init__(self, ctx: ExecutionContext) -> None:
        self.ctx = ctx

    def run(
        self,
        command: list[str],
        *,
        description: Optional[str] = None,
        check: bool = True,
        timeout: Optional[int] = None,
        errors: Optional[str] = None,
    ) -> CommandResult:
        """Execute a command and capture its output.

        Args:
            command: Command as list of strings
            description: Human-readable description for logging
            check: Raise exception on non-zero exit
            timeout: Command timeout in seconds
            errors: Decoding error handler for captured output

        Returns:
            CommandResult with output

        Raises:
            ExecutionError: If the command cannot run, times out, or fails
                with check=True
        """
        if description:
            self.ctx.console.step(description)

        cmd_display = shlex.join(command)
        self.ctx.console.debug(f"Running: {cmd_display}")

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                errors=errors,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            raise ExecutionError(
                f"Command timed out after {timeout}s: {description or cmd_display}",
                command=cmd_display,
            )
        except OSError as e:
            raise ExecutionError(
                f"Cannot run command: {description or cmd_display}",
                command=cmd_display,
                stderr=str(e),
            ) from e

        cmd_result = CommandResult(
            command=command,
            return_code=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )

        if check and result.returncode != 0:
            raise ExecutionError(
                f"Command failed: {description or cmd_display}",
                command=cmd_display,
                return_code=result.returncode,
                stderr=result.stderr,
            )

        return cmd_result

    def which(self, name: str) -> Optional[str]:
        """Locate an executable on PATH."""
        return shutil.which(name)

    def write_file(
        self,
        path: Path,
        content: str,
        *,
        description: Optional[str] = None,
        permissions: int = 0o644,
        exclusive: bool = False,
    ) -> None:
        """Write content to a file.

        Args:
            path: Destination path
            content: File content
            description: Human-readable description
            permissions: File permissions
            exclusive: Fail with FileExistsError instead of replacing a file

        Raises:
            OSError: If the file cannot be written
        """
        desc = description or f"Write {path}"
        self.ctx.console.step(desc)

        if exclusive:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, permissions)
            with os.fdopen(fd, "w") as f:
                f.write(content)
            return

        with AtomicFileWriter(path, permissions=permissions).open() as f:
            f.write(content)

        self.ctx.console.debug(f"Wrote {len(content)} bytes to {path}")

    def backup_file(self, path: Path, *, timestamp: str, max_attempts: int = 100) -> Path:
        """Copy a file to `<path>.bak_<timestamp>` beside the original.

        An existing backup is never replaced; a `_<n>` suffix is added
        instead.

        Args:
            path: File to backup
            timestamp: Timestamp embedded in the backup name
            max_attempts: Number of names tried before giving up

        Returns:
            Path to backup file

        Raises:
            OSError: If the copy cannot be created
        """
        for attempt in range(max_attempts):
            suffix = f"_{attempt}" if attempt else ""
            backup_path = path.with_name(f"{path.name}.bak_{timestamp}{suffix}")
            if not backup_path.exists():
                break
        else:
            raise FileExistsError(f"No free backup name for {path}.bak_{timestamp}")

        shutil.copy2(path, backup_path)
        self.ctx.console.debug(f"Backed up {path} to {backup_path}")
        return backup_path
