"""PostgreSQL configuration recommendations.

Provides:
- Derivation rules for memory, WAL, autovacuum and parallelism settings
- SSD/HDD disk profiles and the policy for unknown media
- The ordered ConfigDocument and its postgresql.conf rendering

Derived values are integral: every fraction of RAM is truncated toward zero,
then the floor is applied, then the ceiling.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterator, Optional

from pgadvisor.core.config import TuningConfig
from pgadvisor.services.system_facts import DiskMedium, SystemSnapshot


SHARED_BUFFERS_CEILING_MB = 8192
WORK_MEM_FLOOR_MB = 16
MAINTENANCE_WORK_MEM_FLOOR_MB = 256
WAL_BUFFERS_FLOOR_MB = 1
WAL_BUFFERS_CEILING_MB = 16
AUTOVACUUM_WORKERS_FLOOR = 4

# Parsed by pgBadger; the field layout must stay exactly as is
LOG_LINE_PREFIX = "%t [%p]: [%l-1] user=%u,db=%d,host=%h,client=%r "

TIMESTAMP_PREFIX = "# Generated at "
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class Unit(Enum):
    """How a value is written in postgresql.conf."""

    MEGABYTES = "megabytes"  # '2048MB'
    SECONDS = "seconds"  # 30s
    MILLISECONDS = "milliseconds"  # 0ms
    MINUTES = "minutes"  # 10min
    DAYS = "days"  # 1d
    INTEGER = "integer"  # 100
    REAL = "real"  # 1.1
    BOOLEAN = "boolean"  # on / off
    STRING = "string"  # 'replica'
    LITERAL = "literal"  # 4GB, 0600, default

    def format(self, value: Any) -> str:
        """Render a raw value in this unit."""
        if self is Unit.MEGABYTES:
            return f"'{int(value)}MB'"
        if self is Unit.SECONDS:
            return f"{int(value)}s"
        if self is Unit.MILLISECONDS:
            return f"{int(value)}ms"
        if self is Unit.MINUTES:
            return f"{int(value)}min"
        if self is Unit.DAYS:
            return f"{int(value)}d"
        if self is Unit.INTEGER:
            return str(int(value))
        if self is Unit.REAL:
            return str(float(value))
        if self is Unit.BOOLEAN:
            return "on" if value else "off"
        if self is Unit.STRING:
            escaped = str(value).replace("'", "''")
            return f"'{escaped}'"
        return str(value)


@dataclass(frozen=True)
class ConfigEntry:
    """A single `key = value` line with an optional explanatory comment."""

    key: str
    value: Any
    unit: Unit
    comment: Optional[str] = None

    @property
    def rendered_value(self) -> str:
        return self.unit.format(self.value)

    def render(self) -> str:
        return f"{self.key} = {self.rendered_value}"


@dataclass(frozen=True)
class ConfigSection:
    """A titled group of entries."""

    title: str
    entries: tuple[ConfigEntry, ...] = ()


@dataclass(frozen=True)
class ConfigDocument:
    """Ordered, immutable configuration document.

    Every key appears at most once. `generated_at` does not take part in
    equality, so two documents built from the same snapshot compare equal.
    """

    sections: tuple[ConfigSection, ...]
    header: tuple[str, ...] = ()
    generated_at: datetime = field(default_factory=datetime.now, compare=False)

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for entry in self.entries():
            if entry.key in seen:
                raise ValueError(f"Duplicate configuration key: {entry.key}")
            seen.add(entry.key)

    def entries(self) -> Iterator[ConfigEntry]:
        for section in self.sections:
            yield from section.entries

    def keys(self) -> list[str]:
        return [entry.key for entry in self.entries()]

    def get(self, key: str) -> Optional[ConfigEntry]:
        return next((e for e in self.entries() if e.key == key), None)

    def value_of(self, key: str) -> Optional[str]:
        """Rendered value for a key, None when the key is absent."""
        entry = self.get(key)
        return entry.rendered_value if entry else None

    def __contains__(self, key: object) -> bool:
        return any(e.key == key for e in self.entries())


@dataclass(frozen=True)
class DiskProfile:
    """Literal I/O settings for a storage medium."""

    name: str
    random_page_cost: float
    effective_io_concurrency: int
    autovacuum_vacuum_cost_delay_ms: int


SSD_PROFILE = DiskProfile(
    name="SSD",
    random_page_cost=1.1,
    effective_io_concurrency=200,
    autovacuum_vacuum_cost_delay_ms=0,
)

HDD_PROFILE = DiskProfile(
    name="HDD",
    random_page_cost=4.0,
    effective_io_concurrency=2,
    autovacuum_vacuum_cost_delay_ms=2,
)

PROFILES = {"ssd": SSD_PROFILE, "hdd": HDD_PROFILE}

# An undetected medium gets the conservative rotational-disk settings
DEFAULT_UNKNOWN_MEDIUM_PROFILE = HDD_PROFILE


def select_disk_profile(
    medium: DiskMedium,
    unknown_profile: DiskProfile = DEFAULT_UNKNOWN_MEDIUM_PROFILE,
) -> DiskProfile:
    """Map a disk medium to exactly one profile."""
    if medium is DiskMedium.SSD:
        return SSD_PROFILE
    if medium is DiskMedium.HDD:
        return HDD_PROFILE
    return unknown_profile


# =============================================================================
# Derivation rules
# =============================================================================

def clamp(value: int, floor: Optional[int] = None, ceiling: Optional[int] = None) -> int:
    """Apply the floor, then the ceiling."""
    if floor is not None and value < floor:
        value = floor
    if ceiling is not None and value > ceiling:
        value = ceiling
    return value


def _fraction_of(ram_mb: float, fraction: float) -> int:
    if not math.isfinite(ram_mb) or ram_mb <= 0:
        return 0
    return int(ram_mb * fraction)


def _known_cores(cpu_cores: Optional[int]) -> int:
    return cpu_cores if cpu_cores is not None and cpu_cores > 0 else 0


def shared_buffers_mb(ram_mb: float) -> int:
    return clamp(_fraction_of(ram_mb, 0.25), ceiling=SHARED_BUFFERS_CEILING_MB)


def effective_cache_size_mb(ram_mb: float) -> int:
    return _fraction_of(ram_mb, 0.75)


def work_mem_mb(ram_mb: float) -> int:
    return clamp(_fraction_of(ram_mb, 0.005), floor=WORK_MEM_FLOOR_MB)


def maintenance_work_mem_mb(ram_mb: float) -> int:
    return clamp(_fraction_of(ram_mb, 0.10), floor=MAINTENANCE_WORK_MEM_FLOOR_MB)


def wal_buffers_mb(shared_mb: int) -> int:
    return clamp(shared_mb // 32, floor=WAL_BUFFERS_FLOOR_MB, ceiling=WAL_BUFFERS_CEILING_MB)


def autovacuum_max_workers(cpu_cores: Optional[int]) -> int:
    return clamp(_known_cores(cpu_cores) // 2, floor=AUTOVACUUM_WORKERS_FLOOR)


def max_worker_processes(cpu_cores: int) -> int:
    return _known_cores(cpu_cores)


def max_parallel_workers_per_gather(cpu_cores: int) -> int:
    return _known_cores(cpu_cores) // 2


def max_parallel_workers(cpu_cores: int) -> int:
    return _known_cores(cpu_cores)


# =============================================================================
# Document generation
# =============================================================================

class RecommendationEngine:
    """Builds a ConfigDocument from a SystemSnapshot.

    `generate` is total: unknown RAM or core counts drop the entries derived
    from them (PostgreSQL's built-in defaults then apply), except
    autovacuum_max_workers, which falls back to its floor.
    """

    def __init__(
        self,
        *,
        unknown_medium_profile: DiskProfile = DEFAULT_UNKNOWN_MEDIUM_PROFILE,
        listen_addresses: str = "*",
        port: int = 5432,
        max_connections: int = 100,
    ) -> None:
        self.unknown_medium_profile = unknown_medium_profile
        self.listen_addresses = listen_addresses
        self.port = port
        self.max_connections = max_connections

    @classmethod
    def from_config(cls, tuning: TuningConfig) -> "RecommendationEngine":
        return cls(
            unknown_medium_profile=PROFILES[tuning.unknown_disk_profile],
            listen_addresses=tuning.listen_addresses,
            port=tuning.port,
            max_connections=tuning.max_connections,
        )

    def generate(
        self,
        snapshot: SystemSnapshot,
        generated_at: Optional[datetime] = None,
    ) -> ConfigDocument:
        """Generate the recommended configuration for a snapshot."""
        profile = select_disk_profile(snapshot.disk_medium, self.unknown_medium_profile)

        sections = (
            self._general(),
            self._resources(snapshot),
            self._concurrency(),
            self._io_and_checkpoints(snapshot, profile),
            self._autovacuum(snapshot, profile),
            self._logging(),
            self._statistics(),
            self._parallelism(snapshot),
        )

        return ConfigDocument(
            sections=tuple(s for s in sections if s.entries),
            header=self._header(snapshot, profile),
            generated_at=generated_at or datetime.now(),
        )

    def _header(self, snapshot: SystemSnapshot, profile: DiskProfile) -> tuple[str, ...]:
        cores = str(snapshot.cpu_cores) if snapshot.cores_known else "unknown"
        ram = f"{snapshot.ram_total_mb:.0f} MB" if snapshot.ram_known else "unknown"
        return (
            f"Target: PostgreSQL {snapshot.engine_version}, {cores} CPU cores, "
            f"{ram} RAM, {snapshot.disk_medium.value} disk ({profile.name} profile)",
            "Derived from hardware only. Review these values against your workload.",
            "To apply, replace postgresql.conf with this file and restart PostgreSQL.",
        )

    def _general(self) -> ConfigSection:
        return ConfigSection("General", (
            ConfigEntry("listen_addresses", self.listen_addresses, Unit.STRING,
                        "Restrict to specific interfaces if required by your security policy"),
            ConfigEntry("port", self.port, Unit.INTEGER),
            ConfigEntry("max_connections", self.max_connections, Unit.INTEGER),
        ))

    def _resources(self, snapshot: SystemSnapshot) -> ConfigSection:
        if not snapshot.ram_known:
            return ConfigSection("Resources")

        ram = snapshot.ram_total_mb
        return ConfigSection("Resources", (
            ConfigEntry("shared_buffers", shared_buffers_mb(ram), Unit.MEGABYTES,
                        f"25% of RAM, at most {SHARED_BUFFERS_CEILING_MB}MB"),
            ConfigEntry("effective_cache_size", effective_cache_size_mb(ram), Unit.MEGABYTES,
                        "75% of RAM, planner estimate of the OS file cache"),
            ConfigEntry("work_mem", work_mem_mb(ram), Unit.MEGABYTES,
                        f"0.5% of RAM per sort/hash operation, at least {WORK_MEM_FLOOR_MB}MB"),
            ConfigEntry("maintenance_work_mem", maintenance_work_mem_mb(ram), Unit.MEGABYTES,
                        f"10% of RAM for VACUUM and CREATE INDEX, at least "
                        f"{MAINTENANCE_WORK_MEM_FLOOR_MB}MB"),
        ))

    def _concurrency(self) -> ConfigSection:
        return ConfigSection("Concurrency and Transactions", (
            ConfigEntry("max_locks_per_transaction", 256, Unit.INTEGER),
            ConfigEntry("max_prepared_transactions", 0, Unit.INTEGER,
                        "Keep 0 unless two-phase commit is used"),
            ConfigEntry("wal_level", "replica", Unit.STRING,
                        "Required for replication and point-in-time recovery"),
        ))

    def _io_and_checkpoints(self, snapshot: SystemSnapshot, profile: DiskProfile) -> ConfigSection:
        entries = []
        if snapshot.ram_known:
            entries.append(ConfigEntry(
                "wal_buffers",
                wal_buffers_mb(shared_buffers_mb(snapshot.ram_total_mb)),
                Unit.MEGABYTES,
                f"1/32 of shared_buffers, between {WAL_BUFFERS_FLOOR_MB}MB "
                f"and {WAL_BUFFERS_CEILING_MB}MB",
            ))
        entries.extend([
            ConfigEntry("min_wal_size", "512MB", Unit.LITERAL),
            ConfigEntry("max_wal_size", "4GB", Unit.LITERAL),
            ConfigEntry("checkpoint_timeout", 10, Unit.MINUTES),
            ConfigEntry("checkpoint_completion_target", 0.9, Unit.REAL),
            ConfigEntry("fsync", True, Unit.BOOLEAN),
            ConfigEntry("synchronous_commit", True, Unit.BOOLEAN),
            ConfigEntry("full_page_writes", True, Unit.BOOLEAN),
            ConfigEntry("random_page_cost", profile.random_page_cost, Unit.REAL,
                        f"{profile.name} profile"),
            ConfigEntry("seq_page_cost", 1.0, Unit.REAL),
            ConfigEntry("effective_io_concurrency", profile.effective_io_concurrency, Unit.INTEGER),
        ])
        return ConfigSection("I/O and Checkpoints", tuple(entries))

    def _autovacuum(self, snapshot: SystemSnapshot, profile: DiskProfile) -> ConfigSection:
        return ConfigSection("Autovacuum", (
            ConfigEntry("autovacuum", True, Unit.BOOLEAN),
            ConfigEntry("autovacuum_max_workers", autovacuum_max_workers(snapshot.cpu_cores),
                        Unit.INTEGER,
                        f"Half the CPU cores, at least {AUTOVACUUM_WORKERS_FLOOR}"),
            ConfigEntry("autovacuum_naptime", 30, Unit.SECONDS),
            ConfigEntry("autovacuum_vacuum_cost_delay", profile.autovacuum_vacuum_cost_delay_ms,
                        Unit.MILLISECONDS),
            ConfigEntry("autovacuum_vacuum_cost_limit", 1000, Unit.INTEGER),
            ConfigEntry("log_autovacuum_min_duration", 0, Unit.INTEGER),
        ))

    def _logging(self) -> ConfigSection:
        return ConfigSection("Logging for pgBadger (restart required)", (
            ConfigEntry("logging_collector", True, Unit.BOOLEAN),
            ConfigEntry("log_directory", "pg_log", Unit.STRING),
            ConfigEntry("log_filename", "postgresql-%Y-%m-%d_%H%M%S.log", Unit.STRING),
            ConfigEntry("log_file_mode", "0600", Unit.LITERAL),
            ConfigEntry("log_truncate_on_rotation", True, Unit.BOOLEAN),
            ConfigEntry("log_rotation_age", 1, Unit.DAYS),
            ConfigEntry("log_rotation_size", 0, Unit.INTEGER),
            ConfigEntry("log_min_duration_statement", 1000, Unit.MILLISECONDS),
            ConfigEntry("log_line_prefix", LOG_LINE_PREFIX, Unit.STRING,
                        "Field layout expected by pgBadger"),
            ConfigEntry("log_checkpoints", True, Unit.BOOLEAN),
            ConfigEntry("log_connections", True, Unit.BOOLEAN),
            ConfigEntry("log_disconnections", True, Unit.BOOLEAN),
            ConfigEntry("log_lock_waits", True, Unit.BOOLEAN),
            ConfigEntry("log_temp_files", 0, Unit.INTEGER),
            ConfigEntry("log_error_verbosity", "default", Unit.LITERAL),
        ))

    def _statistics(self) -> ConfigSection:
        return ConfigSection("Statistics", (
            ConfigEntry("log_statement", "ddl", Unit.STRING),
            ConfigEntry("track_counts", True, Unit.BOOLEAN),
            ConfigEntry("track_io_timing", True, Unit.BOOLEAN),
            ConfigEntry("track_functions", "all", Unit.STRING),
            ConfigEntry("log_parser_stats", False, Unit.BOOLEAN),
            ConfigEntry("log_planner_stats", False, Unit.BOOLEAN),
            ConfigEntry("log_executor_stats", False, Unit.BOOLEAN),
        ))

    def _parallelism(self, snapshot: SystemSnapshot) -> ConfigSection:
        entries = []
        if snapshot.cores_known:
            cores = snapshot.cpu_cores
            entries.extend([
                ConfigEntry("max_worker_processes", max_worker_processes(cores), Unit.INTEGER),
                ConfigEntry("max_parallel_workers_per_gather",
                            max_parallel_workers_per_gather(cores), Unit.INTEGER),
                ConfigEntry("max_parallel_workers", max_parallel_workers(cores), Unit.INTEGER),
            ])
        entries.extend([
            ConfigEntry("bytea_output", "hex", Unit.STRING),
            ConfigEntry("default_statistics_target", 500, Unit.INTEGER),
        ])
        return ConfigSection("Parallelism and Other", tuple(entries))


def render_document(document: ConfigDocument) -> str:
    """Render a document as postgresql.conf text.

    The first line carries the generation timestamp; every other line is a
    pure function of the document.
    """
    lines = [f"{TIMESTAMP_PREFIX}{document.generated_at.strftime(TIMESTAMP_FORMAT)} by pgadvisor"]
    lines.extend(f"# {line}" for line in document.header)

    for section in document.sections:
        lines.append("")
        lines.append(f"# {section.title}")
        for entry in section.entries:
            if entry.comment:
                lines.append(f"# {entry.comment}")
            lines.append(entry.render())

    return "\n".join(lines) + "\n"


def strip_timestamp(text: str) -> str:
    """Drop the generation timestamp line, for content comparisons."""
    return "".join(
        line for line in text.splitlines(keepends=True)
        if not line.startswith(TIMESTAMP_PREFIX)
    )
