"""Host hardware detection.

Provides:
- SystemSnapshot, the immutable set of facts for one run
- Per-platform probes for disk medium, RAM, swap and CPU cores
- Probe selection from the platform identifier

Every probe recovers locally: a fact that cannot be read comes back as its
sentinel (DiskMedium.UNKNOWN, 0 MB, None cores) and never aborts the probe.
"""

import json
import math
import os
import re
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from pgadvisor.core.exceptions import ExecutionError
from pgadvisor.core.executor import CommandExecutor


ENGINE_UNDETECTED = "undetected"

# Probe commands are local and quick
PROBE_TIMEOUT = 10

_MEMINFO_PATH = Path("/proc/meminfo")
_MEMINFO_LINE = re.compile(r"^(\w+):\s*(\d+)\s*kB", re.MULTILINE)
_PHYSMEM_PATTERN = re.compile(
    r"PhysMem:\s*([\d.]+[GMK])\s*used.*?([\d.]+[GMK])\s*unused",
)
_SWAPUSAGE_PATTERN = re.compile(
    r"total = ([\d.]+)M\s+used = ([\d.]+)M\s+free = ([\d.]+)M",
)


class DiskMedium(Enum):
    """Storage medium backing the database."""

    SSD = "SSD"
    HDD = "HDD"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class MemoryInfo:
    """Total and free amount of a memory pool, in MB."""

    total_mb: float = 0.0
    free_mb: Optional[float] = None


@dataclass(frozen=True)
class SystemSnapshot:
    """Measured hardware and engine facts for one run."""

    cpu_cores: Optional[int]
    ram_total_mb: float
    disk_medium: DiskMedium
    engine_version: str = ENGINE_UNDETECTED

    # Display only; never used for recommendations
    ram_free_mb: Optional[float] = None
    swap_total_mb: Optional[float] = None
    swap_free_mb: Optional[float] = None

    @property
    def ram_known(self) -> bool:
        """True when total RAM is a usable positive number."""
        return math.isfinite(self.ram_total_mb) and self.ram_total_mb > 0

    @property
    def cores_known(self) -> bool:
        """True when the CPU core count is a positive integer."""
        return self.cpu_cores is not None and self.cpu_cores >= 1

    @property
    def engine_detected(self) -> bool:
        """True when a PostgreSQL version was found."""
        return bool(self.engine_version) and self.engine_version != ENGINE_UNDETECTED


def _to_mb(value: str) -> float:
    """Convert values like "12G", "4.0M", "1024K" to MB."""
    number = float(re.match(r"[\d.]+", value).group(0))
    suffix = value[-1].upper()
    if suffix == "G":
        return number * 1024
    if suffix == "M":
        return number
    if suffix == "K":
        return number / 1024.0
    return number / (1024.0 * 1024.0)


class SystemFactsProbe(ABC):
    """Platform-specific hardware probe."""

    name: str = "unknown"

    def __init__(self, executor: CommandExecutor) -> None:
        self.executor = executor

    @property
    def console(self):
        return self.executor.ctx.console

    def _output(self, command: list[str]) -> str:
        """Run a probe command; empty string when it fails."""
        try:
            result = self.executor.run(command, check=False, timeout=PROBE_TIMEOUT)
        except ExecutionError as e:
            self.console.debug(f"Probe command unavailable: {e}")
            return ""
        if not result.success:
            self.console.debug(
                f"Probe command exited {result.return_code}: {' '.join(command)}"
            )
            return ""
        return result.stdout

    @abstractmethod
    def disk_medium(self) -> DiskMedium:
        """Detect whether the primary disk is SSD or HDD."""

    @abstractmethod
    def ram_info(self) -> MemoryInfo:
        """Total and available RAM."""

    @abstractmethod
    def swap_info(self) -> MemoryInfo:
        """Total and free swap."""

    @abstractmethod
    def cpu_cores(self) -> Optional[int]:
        """Number of CPU cores, None when unknown."""


class LinuxSystemFacts(SystemFactsProbe):
    """Probe using /proc/meminfo, nproc and lsblk."""

    name = "linux"

    def _meminfo(self) -> dict[str, int]:
        try:
            text = _MEMINFO_PATH.read_text()
        except OSError as e:
            self.console.debug(f"Cannot read {_MEMINFO_PATH}: {e}")
            return {}
        return {key: int(kb) for key, kb in _MEMINFO_LINE.findall(text)}

    def disk_medium(self) -> DiskMedium:
        output = self._output(["lsblk", "-d", "-o", "NAME,ROTA,TYPE", "--json"])
        if output.strip().startswith("{"):
            try:
                devices = json.loads(output).get("blockdevices", [])
            except ValueError as e:
                self.console.debug(f"Invalid lsblk JSON: {e}")
                devices = []
            disks = [d for d in devices if d.get("type", "disk") == "disk"]
            if any(d.get("rota") in (False, "0") for d in disks):
                return DiskMedium.SSD
            if any(d.get("rota") in (True, "1") for d in disks):
                return DiskMedium.HDD
            return DiskMedium.UNKNOWN

        # Older lsblk without --json
        self.console.debug("lsblk --json gave no usable output, trying plain output")
        output = self._output(["lsblk", "-d", "-n", "-o", "NAME,ROTA"])
        rota_values = [line.split()[-1] for line in output.splitlines() if line.split()]
        if "0" in rota_values:
            return DiskMedium.SSD
        if "1" in rota_values:
            return DiskMedium.HDD
        return DiskMedium.UNKNOWN

    def ram_info(self) -> MemoryInfo:
        meminfo = self._meminfo()
        total_kb = meminfo.get("MemTotal", 0)
        free_kb = meminfo.get("MemAvailable")
        return MemoryInfo(
            total_mb=round(total_kb / 1024.0, 2),
            free_mb=round(free_kb / 1024.0, 2) if free_kb is not None else None,
        )

    def swap_info(self) -> MemoryInfo:
        meminfo = self._meminfo()
        total_kb = meminfo.get("SwapTotal", 0)
        free_kb = meminfo.get("SwapFree")
        return MemoryInfo(
            total_mb=round(total_kb / 1024.0, 2),
            free_mb=round(free_kb / 1024.0, 2) if free_kb is not None else None,
        )

    def cpu_cores(self) -> Optional[int]:
        output = self._output(["nproc"]).strip()
        if output.isdigit() and int(output) > 0:
            return int(output)
        count = os.cpu_count()
        return count if count and count > 0 else None


class MacSystemFacts(SystemFactsProbe):
    """Probe using sysctl, top and system_profiler."""

    name = "darwin"

    def disk_medium(self) -> DiskMedium:
        for data_type in ("SPNVMeDataType", "SPSerialATADataType"):
            output = self._output(["system_profiler", data_type])
            if "Solid State: Yes" in output:
                return DiskMedium.SSD
            if "Solid State: No" in output:
                return DiskMedium.HDD
        return DiskMedium.UNKNOWN

    def ram_info(self) -> MemoryInfo:
        output = self._output(["sysctl", "-n", "hw.memsize"]).strip()
        total_mb = int(output) / (1024.0 ** 2) if output.isdigit() else 0.0

        free_mb = None
        match = _PHYSMEM_PATTERN.search(self._output(["top", "-l", "1", "-s", "0", "-n", "0"]))
        if match:
            free_mb = round(_to_mb(match.group(2)), 2)
        return MemoryInfo(total_mb=round(total_mb, 2), free_mb=free_mb)

    def swap_info(self) -> MemoryInfo:
        match = _SWAPUSAGE_PATTERN.search(self._output(["sysctl", "vm.swapusage"]))
        if not match:
            return MemoryInfo()
        return MemoryInfo(
            total_mb=round(float(match.group(1)), 2),
            free_mb=round(float(match.group(3)), 2),
        )

    def cpu_cores(self) -> Optional[int]:
        output = self._output(["sysctl", "-n", "hw.ncpu"]).strip()
        if output.isdigit() and int(output) > 0:
            return int(output)
        return None


class UnsupportedSystemFacts(SystemFactsProbe):
    """Fallback for platforms without a probe: every fact is unknown."""

    name = "unsupported"

    def disk_medium(self) -> DiskMedium:
        return DiskMedium.UNKNOWN

    def ram_info(self) -> MemoryInfo:
        return MemoryInfo()

    def swap_info(self) -> MemoryInfo:
        return MemoryInfo()

    def cpu_cores(self) -> Optional[int]:
        return None


def select_system_facts(
    executor: CommandExecutor,
    platform: Optional[str] = None,
) -> SystemFactsProbe:
    """Pick the probe for a platform identifier (defaults to sys.platform)."""
    platform = platform or sys.platform
    if platform.startswith("linux"):
        return LinuxSystemFacts(executor)
    if platform.startswith("darwin"):
        return MacSystemFacts(executor)
    return UnsupportedSystemFacts(executor)


def collect_snapshot(facts: SystemFactsProbe, engine_version: str) -> SystemSnapshot:
    """Probe all facts once and freeze them into a snapshot."""
    ram = facts.ram_info()
    swap = facts.swap_info()
    return SystemSnapshot(
        cpu_cores=facts.cpu_cores(),
        ram_total_mb=ram.total_mb,
        disk_medium=facts.disk_medium(),
        engine_version=engine_version or ENGINE_UNDETECTED,
        ram_free_mb=ram.free_mb,
        swap_total_mb=swap.total_mb,
        swap_free_mb=swap.free_mb,
    )
