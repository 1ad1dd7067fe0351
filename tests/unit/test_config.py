"""Unit tests for configuration loading and environment overrides."""

from pathlib import Path

import pytest
import yaml

from pgadvisor.core.config import (
    AdvisorConfig,
    AppConfig,
    EnvironmentOverrides,
    TuningConfig,
    get_example_config,
    init_config,
)
from pgadvisor.core.exceptions import ConfigurationError


class TestTuningConfig:
    """Tests for tuning value validation."""

    def test_defaults(self):
        """Defaults should match the built-in recommendation values."""
        tuning = TuningConfig()
        assert tuning.listen_addresses == "*"
        assert tuning.port == 5432
        assert tuning.max_connections == 100
        assert tuning.unknown_disk_profile == "hdd"

    @pytest.mark.parametrize("port", [0, 65536, -1])
    def test_invalid_port(self, port):
        """Ports outside 1-65535 should be rejected."""
        with pytest.raises(ValueError):
            TuningConfig(port=port)

    def test_invalid_max_connections(self):
        """max_connections below 1 should be rejected."""
        with pytest.raises(ValueError):
            TuningConfig(max_connections=0)

    def test_profile_case_insensitive(self):
        """Profile names should be normalized to lower case."""
        assert TuningConfig(unknown_disk_profile="SSD").unknown_disk_profile == "ssd"

    def test_invalid_profile(self):
        """Unknown profile names should be rejected."""
        with pytest.raises(ValueError):
            TuningConfig(unknown_disk_profile="nvme")


class TestAdvisorConfig:
    """Tests for YAML loading."""

    def test_load(self, tmp_path: Path):
        """Values from YAML should override defaults."""
        path = tmp_path / "config.yaml"
        path.write_text(
            "tuning:\n"
            "  port: 5433\n"
            "output:\n"
            "  candidate_name: proposed.conf\n"
            "audit:\n"
            "  enabled: false\n"
        )

        config = AdvisorConfig.load(path)

        assert config.tuning.port == 5433
        assert config.tuning.max_connections == 100
        assert config.output.candidate_name == "proposed.conf"
        assert config.audit.enabled is False

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        """An empty file should load as defaults."""
        path = tmp_path / "config.yaml"
        path.write_text("")

        assert AdvisorConfig.load(path) == AdvisorConfig()

    def test_missing_file(self, tmp_path: Path):
        """load should fail for a missing file, load_or_default should not."""
        path = tmp_path / "missing.yaml"

        with pytest.raises(ConfigurationError) as exc_info:
            AdvisorConfig.load(path)
        assert exc_info.value.exit_code == 2
        assert AdvisorConfig.load_or_default(path) == AdvisorConfig()

    def test_invalid_yaml(self, tmp_path: Path):
        """Broken YAML should raise ConfigurationError."""
        path = tmp_path / "config.yaml"
        path.write_text("tuning: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            AdvisorConfig.load(path)

    def test_non_mapping(self, tmp_path: Path):
        """A top-level list should raise ConfigurationError."""
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            AdvisorConfig.load(path)

    def test_invalid_value(self, tmp_path: Path):
        """Validation errors should become ConfigurationError."""
        path = tmp_path / "config.yaml"
        path.write_text("output:\n  candidate_name: ../postgresql.conf\n")

        with pytest.raises(ConfigurationError):
            AdvisorConfig.load(path)

    def test_to_yaml_round_trips(self):
        """to_yaml output should load back to the same configuration."""
        config = AdvisorConfig(tuning=TuningConfig(port=6543))
        assert AdvisorConfig(**yaml.safe_load(config.to_yaml())) == config

    def test_example_config_is_valid(self):
        """The example configuration should load as the defaults."""
        data = yaml.safe_load(get_example_config())
        assert AdvisorConfig(**data) == AdvisorConfig()


class TestEnvironmentOverrides:
    """Tests for PGADVISOR_* environment variables."""

    def test_unset(self):
        """Without variables no override should apply."""
        overrides = EnvironmentOverrides()
        assert overrides.postgresql_conf is None
        assert overrides.output_dir is None

    def test_output_dir_takes_precedence(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        """PGADVISOR_OUTPUT_DIR should win over the config file."""
        monkeypatch.setenv("PGADVISOR_OUTPUT_DIR", str(tmp_path / "env"))
        config = AdvisorConfig(output={"recommendation_dir": str(tmp_path / "file")})

        app_config = AppConfig(config_path=tmp_path / "config.yaml", config=config)

        assert app_config.recommendation_dir == tmp_path / "env"

    def test_config_file_dir_without_env(self, tmp_path: Path):
        """Without the variable the config file directory should be used."""
        config = AdvisorConfig(output={"recommendation_dir": str(tmp_path / "file")})

        app_config = AppConfig(config_path=tmp_path / "config.yaml", config=config)

        assert app_config.recommendation_dir == tmp_path / "file"

    def test_postgresql_conf_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        """PGADVISOR_POSTGRESQL_CONF should be exposed as a Path."""
        monkeypatch.setenv("PGADVISOR_POSTGRESQL_CONF", "/srv/pg/postgresql.conf")

        app_config = AppConfig(config_path=tmp_path / "config.yaml")

        assert app_config.postgresql_conf_override == Path("/srv/pg/postgresql.conf")


class TestInitConfig:
    """Tests for config file initialization."""

    def test_creates_file(self, tmp_path: Path):
        """init_config should write the example configuration."""
        path = tmp_path / "etc" / "config.yaml"

        init_config(path)

        assert path.read_text() == get_example_config()

    def test_refuses_overwrite(self, tmp_path: Path):
        """An existing file should not be replaced without force."""
        path = tmp_path / "config.yaml"
        path.write_text("tuning: {}\n")

        with pytest.raises(ConfigurationError):
            init_config(path)
        assert path.read_text() == "tuning: {}\n"

        init_config(path, force=True)
        assert path.read_text() == get_example_config()
