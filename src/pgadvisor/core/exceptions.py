"""Custom exceptions for pgadvisor.

All exceptions provide:
- Clear error messages
- Optional hints for resolution
- Optional details for debugging
- Exit codes for proper shell integration
"""

from pathlib import Path
from typing import Optional


class AdvisorError(Exception):
    """Base exception for all pgadvisor errors.

    Attributes:
        message: Human-readable error description
        hint: Suggested action to resolve the error
        details: Additional context for debugging
        exit_code: Shell exit code (1-127)
    """

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        *,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or []

    def __str__(self) -> str:
        return self.message


class ConfigurationError(AdvisorError):
    """Advisor configuration file or settings errors.

    Raised when:
    - Config file unreadable
    - Invalid YAML syntax
    - Invalid configuration values
    """
    exit_code = 2


class ExecutionError(AdvisorError):
    """External command failures.

    Raised when:
    - Command returns non-zero exit code (with check=True)
    - Command binary cannot be started
    - Command times out
    """
    exit_code = 5

    def __init__(
        self,
        message: str,
        *,
        command: Optional[str] = None,
        return_code: Optional[int] = None,
        stderr: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        if not details:
            details = []
        if return_code is not None:
            details.append(f"Exit code: {return_code}")
        if stderr:
            details.append(f"Error output: {stderr}")
        super().__init__(message, hint=hint, details=details)
        self.command = command
        self.return_code = return_code
        self.stderr = stderr


# Workflow exceptions

class ProbeUnavailable(AdvisorError):
    """A system or engine fact required for a safe recommendation is missing.

    Raised when:
    - PostgreSQL is not detected
    - Total RAM cannot be determined
    """
    exit_code = 20

    def __init__(
        self,
        message: str,
        *,
        fact: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, hint=hint, details=details)
        self.fact = fact


class BackupFailure(AdvisorError):
    """The existing configuration file could not be backed up.

    Raised when:
    - The copy cannot be created (permissions, disk full)
    - The copy does not match the original byte-for-byte
    """
    exit_code = 21

    def __init__(
        self,
        message: str,
        *,
        source: Optional[Path] = None,
        backup_path: Optional[Path] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, hint=hint, details=details)
        self.source = source
        self.backup_path = backup_path


class DiffToolFailure(AdvisorError):
    """The external diff tool failed for a reason other than differences.

    Raised when:
    - diff exits with a status other than 0 or 1
    - diff is not installed
    """
    exit_code = 22

    def __init__(
        self,
        message: str,
        *,
        backup_path: Optional[Path] = None,
        stderr: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        if not details:
            details = []
        if stderr:
            details.append(f"diff output: {stderr.strip()}")
        super().__init__(message, hint=hint, details=details)
        self.backup_path = backup_path
        self.stderr = stderr


class WriteFailure(AdvisorError):
    """A recommendation or candidate file could not be written."""
    exit_code = 23

    def __init__(
        self,
        message: str,
        *,
        path: Optional[Path] = None,
        backup_path: Optional[Path] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, hint=hint, details=details)
        self.path = path
        self.backup_path = backup_path
