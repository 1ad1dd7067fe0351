"""PostgreSQL installation detection.

Locates the installed PostgreSQL version and its postgresql.conf.
"""

import glob
import re
import sys
from pathlib import Path
from typing import Optional

from pgadvisor.core.exceptions import ExecutionError
from pgadvisor.core.executor import CommandExecutor
from pgadvisor.services.system_facts import ENGINE_UNDETECTED, PROBE_TIMEOUT


_PSQL_VERSION = re.compile(r"psql \(PostgreSQL\) (\d+(?:\.\d+)?)")

# Debian/Ubuntu keep one directory per major version here
DEBIAN_CONF_ROOT = Path("/etc/postgresql")

CONF_PATTERNS = {
    "linux": [
        "/etc/postgresql/*/main/postgresql.conf",  # Debian/Ubuntu
        "/var/lib/pgsql/data/postgresql.conf",  # RHEL/CentOS
        "/var/lib/pgsql/*/data/postgresql.conf",  # PGDG RPMs
        "/usr/local/pgsql/data/postgresql.conf",  # Source install
    ],
    "darwin": [
        "/opt/homebrew/var/postgresql@*/postgresql.conf",  # Homebrew, Apple Silicon
        "/opt/homebrew/var/postgres/postgresql.conf",
        "/usr/local/var/postgresql@*/postgresql.conf",  # Homebrew, Intel
        "/usr/local/var/postgres/postgresql.conf",
        "/Library/PostgreSQL/*/data/postgresql.conf",  # EDB installer
    ],
}


def _version_key(path: str) -> tuple[int, ...]:
    """Sort key preferring paths with higher embedded version numbers."""
    return tuple(int(n) for n in re.findall(r"\d+", path))


class PostgresProbe:
    """Detects the PostgreSQL version and configuration file path."""

    def __init__(
        self,
        executor: CommandExecutor,
        platform: Optional[str] = None,
    ) -> None:
        self.executor = executor
        self.platform = platform or sys.platform

    @property
    def console(self):
        return self.executor.ctx.console

    @property
    def _family(self) -> Optional[str]:
        for family in CONF_PATTERNS:
            if self.platform.startswith(family):
                return family
        return None

    def version(self) -> str:
        """Detect the installed PostgreSQL version.

        Returns:
            Version string (e.g. "16.2") or "undetected"
        """
        try:
            result = self.executor.run(["psql", "--version"], check=False, timeout=PROBE_TIMEOUT)
            match = _PSQL_VERSION.search(result.stdout)
            if result.success and match:
                return match.group(1)
        except ExecutionError as e:
            self.console.debug(f"psql not available: {e}")

        # Server packages without the client on PATH
        try:
            if DEBIAN_CONF_ROOT.is_dir():
                versions = sorted(
                    (d.name for d in DEBIAN_CONF_ROOT.iterdir() if d.is_dir() and d.name.isdigit()),
                    key=int,
                    reverse=True,
                )
                if versions:
                    return versions[0]
        except OSError as e:
            self.console.debug(f"Cannot read {DEBIAN_CONF_ROOT}: {e}")

        return ENGINE_UNDETECTED

    def config_path(self) -> Optional[Path]:
        """Locate postgresql.conf.

        Tries `pg_config --sysconfdir` first, then well-known locations for
        the platform.

        Returns:
            Path to postgresql.conf or None if not found
        """
        family = self._family
        if family is None:
            self.console.debug(f"No postgresql.conf locations known for {self.platform}")
            return None

        sysconfdir = self._sysconfdir()
        if sysconfdir:
            if family == "linux":
                # Debian: sysconfdir is /etc/postgresql, clusters below it
                matches = sorted(glob.glob(f"{sysconfdir}/*/main/postgresql.conf"),
                                 key=_version_key, reverse=True)
                if matches:
                    return Path(matches[0])
            candidate = Path(sysconfdir) / "postgresql.conf"
            if candidate.is_file():
                return candidate

        for pattern in CONF_PATTERNS[family]:
            matches = sorted(glob.glob(pattern), key=_version_key, reverse=True)
            for path in matches:
                if Path(path).is_file():
                    return Path(path)

        return None

    def _sysconfdir(self) -> Optional[str]:
        try:
            result = self.executor.run(["pg_config", "--sysconfdir"], check=False, timeout=PROBE_TIMEOUT)
        except ExecutionError as e:
            self.console.debug(f"pg_config not available: {e}")
            return None
        value = result.stdout.strip()
        return value if result.success and value else None
