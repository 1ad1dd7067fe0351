"""Configuration management using Pydantic.

Provides:
- Typed configuration models with validation
- Optional YAML file loading with defaults
- Environment variable overrides for per-run paths
- Configuration initialization and display
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from pgadvisor.core.exceptions import ConfigurationError


# Default configuration paths
DEFAULT_CONFIG_PATH = Path("/etc/pgadvisor/config.yaml")
DEFAULT_LOG_DIR = Path("/var/log/pgadvisor")
DEFAULT_AUDIT_LOG = DEFAULT_LOG_DIR / "audit.log"


class TuningConfig(BaseModel):
    """Fixed values and policies used by the recommendation engine."""

    listen_addresses: str = "*"
    port: int = 5432
    max_connections: int = 100

    # Profile used when the disk medium cannot be determined
    unknown_disk_profile: str = "hdd"

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @field_validator("max_connections")
    @classmethod
    def validate_max_connections(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_connections must be at least 1")
        return v

    @field_validator("unknown_disk_profile")
    @classmethod
    def validate_unknown_disk_profile(cls, v: str) -> str:
        v = v.lower()
        if v not in {"ssd", "hdd"}:
            raise ValueError("unknown_disk_profile must be one of: ['hdd', 'ssd']")
        return v


class OutputConfig(BaseModel):
    """Where generated files are written."""

    # Standalone recommendations (no existing postgresql.conf found)
    recommendation_dir: Path = Path(".")

    # Candidate replacement, written beside the existing postgresql.conf
    candidate_name: str = "new.conf"

    @field_validator("candidate_name")
    @classmethod
    def validate_candidate_name(cls, v: str) -> str:
        if not v or "/" in v or v in {".", ".."}:
            raise ValueError("candidate_name must be a plain file name")
        return v


class AuditConfig(BaseModel):
    """Audit trail configuration."""

    enabled: bool = True
    log_path: Path = DEFAULT_AUDIT_LOG


class AdvisorConfig(BaseModel):
    """Root configuration model, loaded from /etc/pgadvisor/config.yaml."""

    tuning: TuningConfig = Field(default_factory=TuningConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)

    @classmethod
    def load(cls, path: Path) -> "AdvisorConfig":
        """Load configuration from YAML file.

        Raises:
            ConfigurationError: If file not found or invalid
        """
        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path}",
                hint="Create it with: pgadvisor config init",
            )

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file: {path}",
                details=[str(e)],
            ) from e
        except PermissionError:
            raise ConfigurationError(
                f"Cannot read configuration file: {path}",
                hint="Check file permissions or run with sudo",
            )

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration file must contain a mapping: {path}",
            )

        try:
            return cls(**data)
        except Exception as e:
            raise ConfigurationError(
                f"Invalid configuration: {e}",
                details=[str(e)],
            ) from e

    @classmethod
    def load_or_default(cls, path: Optional[Path] = None) -> "AdvisorConfig":
        """Load configuration, falling back to defaults if file doesn't exist."""
        if path is None:
            path = DEFAULT_CONFIG_PATH

        if path.exists():
            return cls.load(path)
        return cls()

    def to_yaml(self) -> str:
        """Convert configuration to YAML string."""
        data = self.model_dump(mode="json", exclude_none=True)
        return yaml.dump(data, default_flow_style=False, sort_keys=False)


class EnvironmentOverrides(BaseSettings):
    """Per-run overrides loaded from environment variables."""

    # Use this postgresql.conf instead of auto-detecting it
    postgresql_conf: Optional[Path] = Field(None, alias="PGADVISOR_POSTGRESQL_CONF")

    # Directory for standalone recommendation files
    output_dir: Optional[Path] = Field(None, alias="PGADVISOR_OUTPUT_DIR")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


class AppConfig:
    """Application configuration combining config file and environment.

    This is the main interface for accessing configuration throughout the app.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        config: Optional[AdvisorConfig] = None,
        overrides: Optional[EnvironmentOverrides] = None,
    ) -> None:
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._config = config or AdvisorConfig.load_or_default(self.config_path)
        self._overrides = overrides or EnvironmentOverrides()

    @property
    def config(self) -> AdvisorConfig:
        """Get the advisor configuration."""
        return self._config

    @property
    def overrides(self) -> EnvironmentOverrides:
        """Get the environment overrides."""
        return self._overrides

    @property
    def tuning(self) -> TuningConfig:
        """Shortcut to tuning config."""
        return self._config.tuning

    @property
    def output(self) -> OutputConfig:
        """Shortcut to output config."""
        return self._config.output

    @property
    def audit(self) -> AuditConfig:
        """Shortcut to audit config."""
        return self._config.audit

    @property
    def recommendation_dir(self) -> Path:
        """Directory for standalone recommendations, environment first."""
        return self._overrides.output_dir or self._config.output.recommendation_dir

    @property
    def postgresql_conf_override(self) -> Optional[Path]:
        """Explicit postgresql.conf path from the environment, if any."""
        return self._overrides.postgresql_conf


def get_example_config() -> str:
    """Generate example configuration file content."""
    return """# pgadvisor configuration
# Every key is optional; missing keys use the defaults shown here.

# Fixed values written into every recommendation
tuning:
  listen_addresses: "*"
  port: 5432
  max_connections: 100
  # Disk profile used when SSD/HDD cannot be detected: hdd or ssd
  unknown_disk_profile: hdd

# Generated files
output:
  # Where recommended_<timestamp>.conf is saved when no postgresql.conf exists
  recommendation_dir: .
  # Candidate replacement written beside the existing postgresql.conf
  candidate_name: new.conf

# JSON audit trail of backups, diffs and writes
audit:
  enabled: true
  log_path: /var/log/pgadvisor/audit.log

# Environment overrides:
#   PGADVISOR_POSTGRESQL_CONF  use this postgresql.conf instead of auto-detection
#   PGADVISOR_OUTPUT_DIR       directory for standalone recommendations
"""


def init_config(path: Path, force: bool = False) -> None:
    """Initialize a new configuration file.

    Raises:
        ConfigurationError: If file exists and force is False
    """
    if path.exists() and not force:
        raise ConfigurationError(
            f"Configuration file already exists: {path}",
            hint="Use --force to overwrite",
        )

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(get_example_config())
        os.chmod(path, 0o644)
    except OSError as e:
        raise ConfigurationError(
            f"Cannot write configuration file: {path}",
            hint="Check permissions or run with sudo",
            details=[str(e)],
        ) from e
