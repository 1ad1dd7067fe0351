"""Configuration analysis commands.

Probes the host and PostgreSQL, generates the recommended configuration and
reconciles it with the existing postgresql.conf.

Commands:
- pgadvisor run (backup, diff and offer to write the candidate file)
- pgadvisor recommend (print the recommendation only)
"""

from pathlib import Path
from typing import Optional

from pgadvisor.core import (
    AuditEventType,
    AuditLogger,
    BackupFailure,
    CommandExecutor,
    DiffToolFailure,
    ExecutionContext,
    ProbeUnavailable,
    WriteFailure,
    get_audit_logger,
)
from pgadvisor.services.engine_probe import PostgresProbe
from pgadvisor.services.log_analyzer import LogAnalyzerAdvisor
from pgadvisor.services.recommendation import (
    PROFILES,
    ConfigDocument,
    RecommendationEngine,
    render_document,
    select_disk_profile,
)
from pgadvisor.services.reconcile import (
    ConfirmProvider,
    ReconciliationOutcome,
    ReconciliationResult,
    ReconciliationWorkflow,
)
from pgadvisor.services.system_facts import (
    ENGINE_UNDETECTED,
    SystemFactsProbe,
    SystemSnapshot,
    collect_snapshot,
    select_system_facts,
)


def _format_mb(value: Optional[float]) -> str:
    if value is None:
        return "unknown"
    return f"{value:.0f} MB"


def _display_snapshot(ctx: ExecutionContext, snapshot: SystemSnapshot, profile_name: str) -> None:
    """Display detected system information."""
    ctx.console.print()
    ctx.console.table(
        "System Detection",
        ["Fact", "Value"],
        [
            ["PostgreSQL", snapshot.engine_version],
            ["CPU cores", str(snapshot.cpu_cores) if snapshot.cores_known else "unknown"],
            ["RAM total", _format_mb(snapshot.ram_total_mb) if snapshot.ram_known else "unknown"],
            ["RAM available", _format_mb(snapshot.ram_free_mb)],
            ["Swap total", _format_mb(snapshot.swap_total_mb)],
            ["Swap free", _format_mb(snapshot.swap_free_mb)],
            ["Disk", f"{snapshot.disk_medium.value} ({profile_name} profile)"],
        ],
    )


def console_confirm(ctx: ExecutionContext, candidate_name: str) -> ConfirmProvider:
    """Confirmation provider that shows the diff and asks on the console."""

    def confirm(diff: str) -> bool:
        ctx.console.diff(diff, title="Proposed changes")
        return ctx.console.confirm(
            f"Write the recommended configuration to {candidate_name}?",
            default=False,
            skip_confirm=ctx.yes,
        )

    return confirm


def probe_snapshot(
    ctx: ExecutionContext,
    facts: SystemFactsProbe,
    probe: PostgresProbe,
    audit: AuditLogger,
    *,
    strict: bool = True,
) -> SystemSnapshot:
    """Collect the snapshot for this run.

    With strict=True an undetected engine or unknown RAM aborts the run.
    Unknown core counts only warn.

    Raises:
        ProbeUnavailable: If a required fact is missing and strict is set
    """
    ctx.console.step("Detecting PostgreSQL installation...")
    version = probe.version()

    if version == ENGINE_UNDETECTED or not version:
        if strict:
            audit.log_failure(AuditEventType.PROBE_ABORT, "engine", "PostgreSQL not detected")
            raise ProbeUnavailable(
                "PostgreSQL installation not detected",
                fact="engine",
                hint="Install PostgreSQL or make sure psql is on PATH",
            )
        ctx.console.warn("PostgreSQL installation not detected")
    else:
        ctx.console.verbose(f"Found PostgreSQL {version}")

    ctx.console.step("Detecting system resources...")
    snapshot = collect_snapshot(facts, version)

    if not snapshot.ram_known:
        if strict:
            audit.log_failure(AuditEventType.PROBE_ABORT, "ram", "total RAM unknown")
            raise ProbeUnavailable(
                "Cannot determine total RAM",
                fact="ram",
                hint="Memory settings cannot be derived without it. Run with -vv for probe details.",
            )
        ctx.console.warn("Cannot determine total RAM; memory settings are omitted")

    if not snapshot.cores_known:
        ctx.console.warn("Cannot determine CPU core count; parallel worker settings are omitted")

    return snapshot


def locate_config(ctx: ExecutionContext, probe: PostgresProbe) -> Optional[Path]:
    """postgresql.conf for this run, environment override first."""
    override = ctx.config.postgresql_conf_override
    if override is not None:
        ctx.console.verbose(f"Using postgresql.conf from PGADVISOR_POSTGRESQL_CONF: {override}")
        return override

    ctx.console.step("Locating postgresql.conf...")
    path = probe.config_path()
    if path is None:
        ctx.console.warn("No existing postgresql.conf found")
    else:
        ctx.console.verbose(f"Found {path}")
    return path


def _display_result(ctx: ExecutionContext, result: ReconciliationResult, existing: Optional[Path]) -> None:
    console = ctx.console
    console.print()

    if result.outcome is ReconciliationOutcome.SAVED_STANDALONE:
        console.success(f"Recommendation saved to {result.candidate_path}")
        console.hint("Review the file and copy the settings into your postgresql.conf")
    elif result.outcome is ReconciliationOutcome.IDENTICAL:
        console.success("postgresql.conf already matches the recommendation")
    elif result.outcome is ReconciliationOutcome.DECLINED:
        console.info("Recommendation not written")
    else:
        console.success(f"Candidate configuration written to {result.candidate_path}")

    console.summary("Reconciliation", {
        "Configuration": str(existing) if existing else "N/A",
        "Backup": str(result.backup_path) if result.backup_path else "N/A",
        "Outcome": result.outcome.value.replace("_", " "),
        "Written": str(result.candidate_path) if result.candidate_path else "N/A",
    })

    if result.outcome is ReconciliationOutcome.APPLIED and existing is not None:
        console.print()
        console.warn("The existing postgresql.conf was not modified")
        console.print("  To activate the recommendation:")
        console.print(f"    sudo cp {result.candidate_path} {existing}", markup=False)
        console.print("    sudo systemctl restart postgresql", markup=False)
        console.print(f"  [dim]To roll back: sudo cp {result.backup_path} {existing}[/dim]")


def build_recommendation(
    ctx: ExecutionContext,
    snapshot: SystemSnapshot,
) -> ConfigDocument:
    engine = RecommendationEngine.from_config(ctx.config.tuning)
    return engine.generate(snapshot)


def run_analysis(
    ctx: ExecutionContext,
    *,
    facts: Optional[SystemFactsProbe] = None,
    probe: Optional[PostgresProbe] = None,
    confirm: Optional[ConfirmProvider] = None,
    audit: Optional[AuditLogger] = None,
) -> ReconciliationResult:
    """Probe, recommend and reconcile with the existing postgresql.conf.

    When the backup or diff step fails, the recommendation is still saved as
    a standalone file before the error propagates.

    Raises:
        ProbeUnavailable: PostgreSQL not detected or RAM unknown
        BackupFailure: Existing configuration could not be backed up
        DiffToolFailure: diff failed
        WriteFailure: A generated file could not be written
    """
    audit = audit or get_audit_logger()
    executor = CommandExecutor(ctx)
    facts = facts or select_system_facts(executor)
    probe = probe or PostgresProbe(executor)
    app_config = ctx.config

    snapshot = probe_snapshot(ctx, facts, probe, audit)
    profile = select_disk_profile(
        snapshot.disk_medium, PROFILES[app_config.tuning.unknown_disk_profile]
    )
    _display_snapshot(ctx, snapshot, profile.name)

    LogAnalyzerAdvisor(executor.which, output=ctx.console).advise()

    ctx.console.print()
    ctx.console.step("Generating recommendation...")
    document = build_recommendation(ctx, snapshot)
    if ctx.is_verbose:
        ctx.console.config_text(render_document(document), title="Recommended postgresql.conf")

    existing = locate_config(ctx, probe)

    candidate_name = app_config.output.candidate_name
    workflow = ReconciliationWorkflow(
        ctx,
        executor,
        confirm or console_confirm(ctx, candidate_name),
        output_dir=app_config.recommendation_dir,
        candidate_name=candidate_name,
        audit=audit,
    )

    try:
        result = workflow.reconcile(existing, document)
    except (BackupFailure, DiffToolFailure) as e:
        try:
            path = workflow.save_standalone(document)
        except WriteFailure as save_error:
            ctx.console.error(f"Could not save the recommendation: {save_error.message}")
        else:
            ctx.console.info(f"Recommendation saved to {path}")
        if e.backup_path:
            ctx.console.info(f"Backup kept at {e.backup_path}")
        raise

    _display_result(ctx, result, existing)
    return result


def preview_recommendation(
    ctx: ExecutionContext,
    *,
    facts: Optional[SystemFactsProbe] = None,
    probe: Optional[PostgresProbe] = None,
) -> ConfigDocument:
    """Print the rendered recommendation without touching any file.

    Missing facts only warn; the affected settings are left out.
    """
    executor = CommandExecutor(ctx)
    facts = facts or select_system_facts(executor)
    probe = probe or PostgresProbe(executor)

    # Audit disabled, nothing here changes the filesystem
    snapshot = probe_snapshot(ctx, facts, probe, AuditLogger(enabled=False), strict=False)
    document = build_recommendation(ctx, snapshot)
    ctx.console.plain(render_document(document))
    return document
