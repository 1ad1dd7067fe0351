"""pgBadger readiness.

pgBadger builds HTML reports from PostgreSQL logs written with the
logging settings in the recommendation. This module only reports whether it
is installed and how to install and run it; it never installs anything.
"""

import sys
from dataclasses import dataclass
from typing import Callable, Optional

from pgadvisor.core.output import Console, console as default_console


PGBADGER_BINARIES = ("pgbadger", "pg_badger")
PGBADGER_DOCS_URL = "https://pgbadger.darold.net/"
REPORT_COMMAND = "pgbadger -f stderr -o report.html /path/to/pg_log/postgresql-*.log"


@dataclass(frozen=True)
class LogAnalyzerStatus:
    """Whether pgBadger is available and what to do next."""

    installed: bool
    binary_path: Optional[str] = None
    install_steps: tuple[str, ...] = ()
    report_command: str = REPORT_COMMAND


def install_steps_for(platform: str) -> tuple[str, ...]:
    """Installation commands for a platform identifier."""
    if platform.startswith("darwin"):
        return ("brew install pgbadger",)
    if platform.startswith("linux"):
        return (
            "sudo apt install pgbadger        # Debian/Ubuntu",
            "sudo dnf install pgbadger        # RHEL/Fedora (EPEL or PGDG)",
            f"# Or build from source, see {PGBADGER_DOCS_URL}",
            "tar xzf pgbadger-X.Y.tar.gz && cd pgbadger-X.Y",
            "perl Makefile.PL && make && sudo make install",
        )
    return (f"# See the pgBadger documentation: {PGBADGER_DOCS_URL}",)


class LogAnalyzerAdvisor:
    """Checks for pgBadger on PATH and prints setup guidance."""

    def __init__(
        self,
        which: Callable[[str], Optional[str]],
        platform: Optional[str] = None,
        output: Optional[Console] = None,
    ) -> None:
        self.which = which
        self.platform = platform or sys.platform
        self.console = output or default_console

    def check(self) -> LogAnalyzerStatus:
        for name in PGBADGER_BINARIES:
            path = self.which(name)
            if path:
                return LogAnalyzerStatus(installed=True, binary_path=path)

        return LogAnalyzerStatus(
            installed=False,
            install_steps=install_steps_for(self.platform),
        )

    def advise(self) -> LogAnalyzerStatus:
        """Print pgBadger status, installation steps and the report command."""
        status = self.check()

        self.console.print()
        self.console.print("[bold]Log analysis (pgBadger)[/bold]")
        if status.installed:
            self.console.success(f"pgBadger found: {status.binary_path}")
        else:
            self.console.warn("pgBadger is not installed")
            self.console.print("  Install it with:")
            for step in status.install_steps:
                self.console.print(f"    {step}", markup=False)

        self.console.info(
            "The logging settings in the recommendation are required for pgBadger reports. "
            "Apply them and restart PostgreSQL first."
        )
        self.console.print("  Generate a report with:")
        self.console.print(f"    {status.report_command}", markup=False)
        return status
