"""Shared fixtures for pgadvisor tests."""

from pathlib import Path
from typing import Generator

import pytest

from pgadvisor.core.audit import AuditLogger
from pgadvisor.core.context import ExecutionContext, create_context
from pgadvisor.services.system_facts import DiskMedium, SystemSnapshot


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Keep host environment overrides out of the tests."""
    monkeypatch.delenv("PGADVISOR_POSTGRESQL_CONF", raising=False)
    monkeypatch.delenv("PGADVISOR_OUTPUT_DIR", raising=False)
    yield


@pytest.fixture
def ctx(tmp_path: Path) -> ExecutionContext:
    """Context with a config path that does not exist (defaults apply)."""
    return create_context(config=tmp_path / "config.yaml")


@pytest.fixture
def audit(tmp_path: Path) -> AuditLogger:
    """Audit logger writing into the test's temporary directory."""
    return AuditLogger(log_path=tmp_path / "audit" / "audit.log")


@pytest.fixture
def snapshot_a() -> SystemSnapshot:
    """8 GB RAM, 4 cores, SSD."""
    return SystemSnapshot(
        cpu_cores=4,
        ram_total_mb=8192,
        disk_medium=DiskMedium.SSD,
        engine_version="16",
    )


@pytest.fixture
def snapshot_b() -> SystemSnapshot:
    """64 GB RAM, 16 cores, HDD."""
    return SystemSnapshot(
        cpu_cores=16,
        ram_total_mb=65536,
        disk_medium=DiskMedium.HDD,
        engine_version="16",
    )
