"""Integration tests for the pgadvisor CLI.

Drives the Typer application end to end against temporary directories,
mocking the hardware and PostgreSQL probes so no real server is needed.
"""

import json
from pathlib import Path
from typing import Generator
from unittest.mock import MagicMock, patch

import pytest
import yaml
from typer.testing import CliRunner

from pgadvisor import __version__
from pgadvisor.cli import app
from pgadvisor.core.exceptions import DiffToolFailure, WriteFailure
from pgadvisor.services.system_facts import DiskMedium, MemoryInfo


runner = CliRunner()

OLD_CONFIG = "listen_addresses = 'localhost'\nshared_buffers = 128MB\n"


@pytest.fixture
def out_dir(tmp_path: Path) -> Path:
    return tmp_path / "out"


@pytest.fixture
def audit_log(tmp_path: Path) -> Path:
    return tmp_path / "log" / "audit.log"


@pytest.fixture
def config_file(tmp_path: Path, out_dir: Path, audit_log: Path) -> Path:
    """Config file pointing every output into the temporary directory."""
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "output": {"recommendation_dir": str(out_dir)},
        "audit": {"log_path": str(audit_log)},
    }))
    return path


@pytest.fixture
def existing_conf(tmp_path: Path) -> Path:
    path = tmp_path / "etc" / "postgresql" / "16" / "main" / "postgresql.conf"
    path.parent.mkdir(parents=True)
    path.write_text(OLD_CONFIG)
    return path


@pytest.fixture
def mock_facts() -> Generator[MagicMock, None, None]:
    """Hardware probe for an 8 GB, 4 core SSD host."""
    with patch("pgadvisor.commands.run.select_system_facts") as mock:
        facts = mock.return_value
        facts.ram_info.return_value = MemoryInfo(total_mb=8192, free_mb=4096)
        facts.swap_info.return_value = MemoryInfo(total_mb=1024, free_mb=1024)
        facts.cpu_cores.return_value = 4
        facts.disk_medium.return_value = DiskMedium.SSD
        yield facts


@pytest.fixture
def mock_probe() -> Generator[MagicMock, None, None]:
    """PostgreSQL 16 with no postgresql.conf found."""
    with patch("pgadvisor.commands.run.PostgresProbe") as mock:
        probe = mock.return_value
        probe.version.return_value = "16"
        probe.config_path.return_value = None
        yield probe


def invoke(args, config_file, **kwargs):
    return runner.invoke(app, [*args, "--config", str(config_file)], **kwargs)


def files_in(path: Path) -> list[str]:
    return sorted(p.name for p in path.iterdir()) if path.exists() else []


class TestRunWithoutExistingConfig:
    """Tests for hosts without a postgresql.conf."""

    def test_saves_standalone_recommendation(self, config_file, out_dir, mock_facts, mock_probe):
        """The recommendation should be saved in the output directory."""
        result = invoke(["run"], config_file)

        assert result.exit_code == 0, result.output
        names = files_in(out_dir)
        assert len(names) == 1
        assert names[0].startswith("recommended_") and names[0].endswith(".conf")
        content = (out_dir / names[0]).read_text()
        assert "shared_buffers = '2048MB'" in content

    def test_audit_session_recorded(self, config_file, audit_log, mock_facts, mock_probe):
        """The run should be framed by session start and end events."""
        invoke(["run"], config_file)

        events = [json.loads(line) for line in audit_log.read_text().splitlines()]
        assert events[0]["event_type"] == "session.start"
        assert events[-1]["event_type"] == "session.end"
        assert events[-1]["parameters"] == {"exit_code": 0}
        assert "recommendation.save" in [e["event_type"] for e in events]


class TestRunWithExistingConfig:
    """Tests for the backup, diff and offer path."""

    @pytest.fixture(autouse=True)
    def found_config(self, mock_probe, existing_conf):
        mock_probe.config_path.return_value = existing_conf

    def test_accept_writes_candidate(self, config_file, existing_conf, mock_facts):
        """Answering yes should write new.conf beside the original."""
        result = invoke(["run"], config_file, input="y\n")

        assert result.exit_code == 0, result.output
        candidate = existing_conf.parent / "new.conf"
        assert candidate.exists()
        assert "shared_buffers = '2048MB'" in candidate.read_text()
        assert existing_conf.read_text() == OLD_CONFIG

    def test_decline_writes_nothing(self, config_file, existing_conf, mock_facts):
        """Answering no should leave only the backup behind."""
        result = invoke(["run"], config_file, input="n\n")

        assert result.exit_code == 0, result.output
        names = files_in(existing_conf.parent)
        assert "new.conf" not in names
        assert any(name.startswith("postgresql.conf.bak_") for name in names)
        assert existing_conf.read_text() == OLD_CONFIG

    def test_yes_skips_prompt(self, config_file, existing_conf, mock_facts):
        """--yes should write the candidate without reading input."""
        result = invoke(["run", "--yes"], config_file)

        assert result.exit_code == 0, result.output
        assert (existing_conf.parent / "new.conf").exists()
        assert existing_conf.read_text() == OLD_CONFIG

    def test_backup_failure_saves_standalone(self, config_file, existing_conf, out_dir, mock_facts):
        """A failed backup should exit 21 and still save the recommendation."""
        with patch("pgadvisor.core.executor.shutil.copy2", side_effect=PermissionError("denied")):
            result = invoke(["run", "--yes"], config_file)

        assert result.exit_code == 21
        assert len(files_in(out_dir)) == 1
        assert files_in(existing_conf.parent) == ["postgresql.conf"]

    def test_diff_failure_saves_standalone(self, config_file, existing_conf, out_dir, mock_facts):
        """A failed diff should exit 22, keep the backup and save the recommendation."""
        failure = DiffToolFailure("diff failed with exit code 2", stderr="boom")
        with patch("pgadvisor.services.reconcile.ReconciliationWorkflow._diff", side_effect=failure):
            result = invoke(["run", "--yes"], config_file)

        assert result.exit_code == 22
        assert len(files_in(out_dir)) == 1
        assert "new.conf" not in files_in(existing_conf.parent)
        assert existing_conf.read_text() == OLD_CONFIG

    def test_failed_fallback_keeps_original_exit_code(self, config_file, existing_conf, mock_facts):
        """A fallback save that fails should not mask the diff failure."""
        failure = DiffToolFailure("diff failed with exit code 2", stderr="boom")
        save_error = WriteFailure("Cannot write recommendation")
        with patch("pgadvisor.services.reconcile.ReconciliationWorkflow._diff", side_effect=failure), \
                patch(
                    "pgadvisor.services.reconcile.ReconciliationWorkflow.save_standalone",
                    side_effect=save_error,
                ):
            result = invoke(["run", "--yes"], config_file)

        assert result.exit_code == 22
        assert "Could not save the recommendation" in result.output
        assert existing_conf.read_text() == OLD_CONFIG


class TestRunAborts:
    """Tests for missing required facts."""

    def test_engine_undetected(self, config_file, out_dir, mock_facts, mock_probe):
        """No PostgreSQL should exit 20 without writing anything."""
        mock_probe.version.return_value = "undetected"

        result = invoke(["run"], config_file)

        assert result.exit_code == 20
        assert files_in(out_dir) == []
        mock_facts.ram_info.assert_not_called()

    def test_ram_unknown(self, config_file, out_dir, mock_facts, mock_probe):
        """Unknown RAM should exit 20 without writing anything."""
        mock_facts.ram_info.return_value = MemoryInfo()

        result = invoke(["run"], config_file)

        assert result.exit_code == 20
        assert files_in(out_dir) == []

    def test_cores_unknown_only_warns(self, config_file, out_dir, mock_facts, mock_probe):
        """Unknown cores should warn and continue without worker settings."""
        mock_facts.cpu_cores.return_value = None

        result = invoke(["run"], config_file)

        assert result.exit_code == 0, result.output
        assert "CPU core count" in result.output
        content = (out_dir / files_in(out_dir)[0]).read_text()
        assert "max_worker_processes" not in content
        assert "autovacuum_max_workers = 4" in content


class TestEnvironmentOverrides:
    """Tests for PGADVISOR_* variables on the run command."""

    def test_postgresql_conf_override(
        self, config_file, existing_conf, mock_facts, mock_probe, monkeypatch
    ):
        """PGADVISOR_POSTGRESQL_CONF should skip auto-detection."""
        monkeypatch.setenv("PGADVISOR_POSTGRESQL_CONF", str(existing_conf))

        result = invoke(["run", "--yes"], config_file)

        assert result.exit_code == 0, result.output
        mock_probe.config_path.assert_not_called()
        assert (existing_conf.parent / "new.conf").exists()

    def test_output_dir_override(self, config_file, tmp_path, out_dir, mock_facts, mock_probe, monkeypatch):
        """PGADVISOR_OUTPUT_DIR should redirect standalone recommendations."""
        env_dir = tmp_path / "env-out"
        monkeypatch.setenv("PGADVISOR_OUTPUT_DIR", str(env_dir))

        result = invoke(["run"], config_file)

        assert result.exit_code == 0, result.output
        assert len(files_in(env_dir)) == 1
        assert files_in(out_dir) == []


class TestRecommendCommand:
    """Tests for the preview command."""

    def test_prints_document(self, config_file, out_dir, mock_facts, mock_probe):
        """recommend should print the rendered configuration only."""
        result = invoke(["recommend", "--quiet"], config_file)

        assert result.exit_code == 0, result.output
        assert result.output.startswith("# Generated at ")
        assert "shared_buffers = '2048MB'" in result.output
        assert files_in(out_dir) == []

    def test_undetected_engine_still_previews(self, config_file, mock_facts, mock_probe):
        """A missing engine should not stop the preview."""
        mock_probe.version.return_value = "undetected"

        result = invoke(["recommend"], config_file)

        assert result.exit_code == 0, result.output
        assert "random_page_cost = 1.1" in result.output


class TestConfigCommands:
    """Tests for version and config sub-commands."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_init_and_validate(self, tmp_path: Path):
        """config init should write a file that config validate accepts."""
        path = tmp_path / "new" / "config.yaml"

        result = runner.invoke(app, ["config", "init", "--config", str(path)])
        assert result.exit_code == 0, result.output
        assert path.exists()

        result = runner.invoke(app, ["config", "validate", "--config", str(path)])
        assert result.exit_code == 0, result.output

    def test_init_refuses_existing(self, config_file):
        """config init should exit 2 rather than overwrite."""
        before = config_file.read_text()

        result = runner.invoke(app, ["config", "init", "--config", str(config_file)])

        assert result.exit_code == 2
        assert config_file.read_text() == before

    def test_invalid_config_exits_2(self, tmp_path: Path, mock_facts, mock_probe):
        """An invalid config file should stop run with exit code 2."""
        path = tmp_path / "config.yaml"
        path.write_text("tuning:\n  port: 70000\n")

        result = runner.invoke(app, ["run", "--config", str(path)])

        assert result.exit_code == 2

    def test_show(self, config_file):
        """config show should list overrides."""
        result = runner.invoke(app, ["config", "show", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "PGADVISOR_OUTPUT_DIR" in result.output
