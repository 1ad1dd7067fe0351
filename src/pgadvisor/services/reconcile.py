"""Backup, diff and opt-in replacement of postgresql.conf.

The workflow is linear: backup -> diff -> offer. Each step either succeeds
or raises, and no step ever writes to the existing configuration file. All
files it creates are new paths: the backup beside the original, the
candidate beside the original, or a standalone recommendation.
"""

import filecmp
import os
import stat
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from pgadvisor.core.audit import AuditEventType, AuditLogger, get_audit_logger
from pgadvisor.core.context import ExecutionContext
from pgadvisor.core.exceptions import (
    BackupFailure,
    DiffToolFailure,
    ExecutionError,
    WriteFailure,
)
from pgadvisor.core.executor import CommandExecutor
from pgadvisor.services.recommendation import ConfigDocument, render_document


FILE_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

# diff exit status: 0 identical, 1 different, anything else is trouble
DIFF_IDENTICAL = 0
DIFF_DIFFERENT = 1

# Receives the diff text, returns True to write the candidate file
ConfirmProvider = Callable[[str], bool]


class ReconciliationOutcome(Enum):
    """Terminal state of a reconciliation."""

    SAVED_STANDALONE = "saved_standalone"
    IDENTICAL = "identical"
    DECLINED = "declined"
    APPLIED = "applied"


@dataclass(frozen=True)
class ReconciliationResult:
    """Filesystem artifacts produced by one reconciliation."""

    outcome: ReconciliationOutcome
    backup_path: Optional[Path] = None
    diff: str = ""
    applied: bool = False
    candidate_path: Optional[Path] = None


class ReconciliationWorkflow:
    """Reconciles a generated document with an existing postgresql.conf."""

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        confirm: ConfirmProvider,
        *,
        output_dir: Path = Path("."),
        candidate_name: str = "new.conf",
        audit: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.ctx = ctx
        self.executor = executor
        self.confirm = confirm
        self.output_dir = Path(output_dir)
        self.candidate_name = candidate_name
        self.audit = audit or get_audit_logger()
        self.clock = clock

    def candidate_path_for(self, existing_path: Path) -> Path:
        return existing_path.parent / self.candidate_name

    def reconcile(
        self,
        existing_path: Optional[Path],
        document: ConfigDocument,
    ) -> ReconciliationResult:
        """Run backup, diff and offer against `existing_path`.

        Raises:
            BackupFailure: The original could not be copied and verified
            DiffToolFailure: diff failed for a reason other than differences
            WriteFailure: A generated file could not be written
        """
        content = render_document(document)

        if not self._is_readable(existing_path):
            if existing_path is not None:
                self.ctx.console.warn(f"Cannot read {existing_path}")
            path = self.save_standalone(document, content)
            return ReconciliationResult(
                outcome=ReconciliationOutcome.SAVED_STANDALONE,
                candidate_path=path,
            )

        backup_path = self._backup(existing_path)
        diff = self._diff(existing_path, content, backup_path)

        if not diff:
            self.ctx.console.verbose("Existing configuration matches the recommendation")
            return ReconciliationResult(
                outcome=ReconciliationOutcome.IDENTICAL,
                backup_path=backup_path,
            )

        if not self.confirm(diff):
            self.audit.log_declined(
                AuditEventType.CONFIG_WRITE,
                str(self.candidate_path_for(existing_path)),
            )
            return ReconciliationResult(
                outcome=ReconciliationOutcome.DECLINED,
                backup_path=backup_path,
                diff=diff,
            )

        candidate_path = self._write_candidate(existing_path, content, backup_path)
        return ReconciliationResult(
            outcome=ReconciliationOutcome.APPLIED,
            backup_path=backup_path,
            diff=diff,
            applied=True,
            candidate_path=candidate_path,
        )

    def save_standalone(
        self,
        document: ConfigDocument,
        content: Optional[str] = None,
    ) -> Path:
        """Write `recommended_<timestamp>.conf` into the output directory.

        A `_<n>` suffix is added when a file of that name already exists.

        Raises:
            WriteFailure: If no file could be created
        """
        content = content if content is not None else render_document(document)
        stamp = document.generated_at.strftime(FILE_TIMESTAMP_FORMAT)

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WriteFailure(
                f"Cannot create output directory: {self.output_dir}",
                path=self.output_dir,
                details=[str(e)],
            ) from e

        for attempt in range(100):
            suffix = f"_{attempt}" if attempt else ""
            path = self.output_dir / f"recommended_{stamp}{suffix}.conf"
            try:
                self.executor.write_file(
                    path,
                    content,
                    description="Saving recommended configuration",
                    exclusive=True,
                )
            except FileExistsError:
                continue
            except OSError as e:
                self.audit.log_failure(AuditEventType.RECOMMENDATION_SAVE, str(path), str(e))
                raise WriteFailure(
                    f"Cannot write recommendation file: {path}",
                    path=path,
                    hint="Set PGADVISOR_OUTPUT_DIR to a writable directory",
                    details=[str(e)],
                ) from e

            self.audit.log_success(AuditEventType.RECOMMENDATION_SAVE, str(path))
            return path

        raise WriteFailure(
            f"No free file name for recommendation in {self.output_dir}",
            path=self.output_dir,
        )

    def _is_readable(self, path: Optional[Path]) -> bool:
        return path is not None and path.is_file() and os.access(path, os.R_OK)

    def _backup(self, existing_path: Path) -> Path:
        """Copy the original beside itself and verify the copy."""
        self.ctx.console.step(f"Backing up {existing_path}")
        timestamp = self.clock().strftime(FILE_TIMESTAMP_FORMAT)

        try:
            backup_path = self.executor.backup_file(existing_path, timestamp=timestamp)
            verified = filecmp.cmp(existing_path, backup_path, shallow=False)
        except OSError as e:
            self.audit.log_failure(AuditEventType.CONFIG_BACKUP, str(existing_path), str(e))
            raise BackupFailure(
                f"Cannot back up {existing_path}",
                source=existing_path,
                hint="Run with sudo or check permissions on the configuration directory",
                details=[str(e)],
            ) from e

        if not verified:
            self.audit.log_failure(
                AuditEventType.CONFIG_BACKUP, str(existing_path), "backup content mismatch"
            )
            raise BackupFailure(
                f"Backup {backup_path} does not match {existing_path}",
                source=existing_path,
                backup_path=backup_path,
            )

        self.audit.log_success(
            AuditEventType.CONFIG_BACKUP, str(existing_path), backup=str(backup_path)
        )
        return backup_path

    def _diff(self, existing_path: Path, content: str, backup_path: Path) -> str:
        """Unified diff between the original and the rendered document.

        Returns:
            Diff text, empty when the files are identical
        """
        try:
            fd, tmp_name = tempfile.mkstemp(prefix="pgadvisor_", suffix=".conf")
        except OSError as e:
            raise WriteFailure(
                "Cannot create temporary file for diff",
                backup_path=backup_path,
                details=[str(e)],
            ) from e

        tmp_path = Path(tmp_name)
        try:
            try:
                with os.fdopen(fd, "w") as f:
                    f.write(content)
            except OSError as e:
                raise WriteFailure(
                    f"Cannot write temporary file: {tmp_path}",
                    path=tmp_path,
                    backup_path=backup_path,
                    details=[str(e)],
                ) from e

            try:
                result = self.executor.run(
                    [
                        "diff", "-u",
                        "--label", str(existing_path),
                        "--label", str(self.candidate_path_for(existing_path)),
                        str(existing_path), str(tmp_path),
                    ],
                    description="Comparing with the recommended configuration",
                    check=False,
                    errors="replace",
                )
            except UnicodeDecodeError as e:
                self.audit.log_failure(AuditEventType.CONFIG_DIFF, str(existing_path), str(e))
                raise DiffToolFailure(
                    "Cannot decode diff output",
                    backup_path=backup_path,
                    stderr=str(e),
                ) from e
            except ExecutionError as e:
                self.audit.log_failure(AuditEventType.CONFIG_DIFF, str(existing_path), str(e))
                raise DiffToolFailure(
                    "Cannot run diff",
                    backup_path=backup_path,
                    stderr=e.stderr,
                    hint="Install diffutils",
                ) from e
        finally:
            tmp_path.unlink(missing_ok=True)

        if result.return_code == DIFF_IDENTICAL:
            self.audit.log_success(AuditEventType.CONFIG_DIFF, str(existing_path), "identical")
            return ""
        if result.return_code == DIFF_DIFFERENT:
            self.audit.log_success(AuditEventType.CONFIG_DIFF, str(existing_path), "different")
            return result.stdout

        self.audit.log_failure(
            AuditEventType.CONFIG_DIFF, str(existing_path), result.stderr or "diff failed"
        )
        raise DiffToolFailure(
            f"diff failed with exit code {result.return_code}",
            backup_path=backup_path,
            stderr=result.stderr or result.stdout,
        )

    def _write_candidate(self, existing_path: Path, content: str, backup_path: Path) -> Path:
        """Write the candidate beside the original, never over it."""
        candidate_path = self.candidate_path_for(existing_path)

        if candidate_path.resolve() == existing_path.resolve():
            raise WriteFailure(
                f"Candidate file {candidate_path} would replace the original",
                path=candidate_path,
                backup_path=backup_path,
                hint="Set output.candidate_name to a different file name",
            )

        try:
            permissions = stat.S_IMODE(existing_path.stat().st_mode)
            self.executor.write_file(
                candidate_path,
                content,
                description=f"Writing {candidate_path}",
                permissions=permissions,
            )
        except OSError as e:
            self.audit.log_failure(AuditEventType.CONFIG_WRITE, str(candidate_path), str(e))
            raise WriteFailure(
                f"Cannot write {candidate_path}",
                path=candidate_path,
                backup_path=backup_path,
                hint="Run with sudo or check permissions on the configuration directory",
                details=[str(e)],
            ) from e

        self.audit.log_success(
            AuditEventType.CONFIG_WRITE, str(candidate_path), source=str(existing_path)
        )
        return candidate_path
