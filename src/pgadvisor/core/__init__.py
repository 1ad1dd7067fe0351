"""Core framework components for pgadvisor."""

from pgadvisor.core.exceptions import (
    AdvisorError,
    ConfigurationError,
    ExecutionError,
    ProbeUnavailable,
    BackupFailure,
    DiffToolFailure,
    WriteFailure,
)

from pgadvisor.core.context import ExecutionContext, create_context
from pgadvisor.core.output import console, Console, Verbosity
from pgadvisor.core.config import AppConfig, AdvisorConfig
from pgadvisor.core.audit import (
    AuditLogger,
    AuditEvent,
    AuditEventType,
    AuditResult,
    configure_audit_logger,
    get_audit_logger,
)
from pgadvisor.core.executor import CommandExecutor, CommandResult

__all__ = [
    # Exceptions
    "AdvisorError",
    "ConfigurationError",
    "ExecutionError",
    "ProbeUnavailable",
    "BackupFailure",
    "DiffToolFailure",
    "WriteFailure",
    # Context
    "ExecutionContext",
    "create_context",
    # Output
    "console",
    "Console",
    "Verbosity",
    # Config
    "AppConfig",
    "AdvisorConfig",
    # Audit
    "AuditLogger",
    "AuditEvent",
    "AuditEventType",
    "AuditResult",
    "configure_audit_logger",
    "get_audit_logger",
    # Executor
    "CommandExecutor",
    "CommandResult",
]
