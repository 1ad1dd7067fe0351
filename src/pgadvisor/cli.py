"""Main CLI entry point using Typer.

This module defines the root CLI application and global options.
"""

from pathlib import Path
from typing import Optional, Annotated

import typer
from rich.console import Console

from pgadvisor import __version__
from pgadvisor.core.audit import AuditLogger, configure_audit_logger
from pgadvisor.core.context import ExecutionContext, create_context
from pgadvisor.core.output import console as app_console
from pgadvisor.core.config import (
    DEFAULT_CONFIG_PATH,
    AdvisorConfig,
    AppConfig,
    get_example_config,
    init_config,
)
from pgadvisor.core.exceptions import AdvisorError


# Create the main Typer app
app = typer.Typer(
    name="pgadvisor",
    help="PostgreSQL Configuration Advisor - hardware-aware postgresql.conf tuning.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)

config_app = typer.Typer(
    name="config",
    help="Configuration management.",
    no_args_is_help=True,
)

app.add_typer(config_app, name="config")


# Type aliases for common options
YesOption = Annotated[
    bool,
    typer.Option(
        "--yes",
        "-y",
        help="Write the candidate configuration without prompting.",
        is_flag=True,
    ),
]

ForceOption = Annotated[
    bool,
    typer.Option(
        "--force",
        "-f",
        help="Overwrite an existing file.",
        is_flag=True,
    ),
]

VerboseOption = Annotated[
    int,
    typer.Option(
        "--verbose",
        "-v",
        count=True,
        help="Increase output verbosity. Can be repeated (-v, -vv).",
    ),
]

QuietOption = Annotated[
    bool,
    typer.Option(
        "--quiet",
        "-q",
        help="Suppress non-essential output. Only show errors.",
        is_flag=True,
    ),
]

NoColorOption = Annotated[
    bool,
    typer.Option(
        "--no-color",
        help="Disable colored output.",
        is_flag=True,
    ),
]

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help=f"Path to configuration file. Default: {DEFAULT_CONFIG_PATH}",
        exists=False,
        file_okay=True,
        dir_okay=False,
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console = Console()
        console.print(f"pgadvisor version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """PostgreSQL Configuration Advisor.

    Inspects CPU cores, RAM and disk type, generates a recommended
    postgresql.conf and compares it with the one already installed.

    [bold]Safety:[/bold]
    - The existing postgresql.conf is never modified
    - A verified backup is taken before anything else
    - The candidate file is written only after confirmation
    - Every filesystem change is recorded in the audit log

    [bold]Examples:[/bold]
        pgadvisor run
        pgadvisor run --yes
        pgadvisor recommend -q > recommended.conf
        pgadvisor config show
    """
    pass


def get_context(
    yes: bool = False,
    verbose: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    config: Optional[Path] = None,
) -> ExecutionContext:
    """Create execution context from CLI options."""
    return create_context(
        yes=yes,
        verbose=verbose,
        quiet=quiet,
        no_color=no_color,
        config=config,
    )


def handle_error(error: AdvisorError) -> None:
    """Handle an AdvisorError by printing formatted error and exiting."""
    app_console.error(error.message)

    if error.details:
        for detail in error.details:
            app_console.print(f"  [dim]{detail}[/dim]")

    if error.hint:
        app_console.hint(error.hint)

    raise typer.Exit(error.exit_code)


def setup_audit(ctx: ExecutionContext) -> AuditLogger:
    """Point the global audit logger at the configured log file."""
    audit_config = ctx.config.audit
    return configure_audit_logger(
        log_path=audit_config.log_path,
        enabled=audit_config.enabled,
    )


# ============================================================================
# Analysis commands
# ============================================================================

@app.command("run")
def run_cmd(
    yes: YesOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Analyze this host and reconcile postgresql.conf.

    Steps:
    1. Detect PostgreSQL, CPU cores, RAM and disk type
    2. Show pgBadger readiness
    3. Generate the recommended configuration
    4. Back up the existing postgresql.conf and diff against it
    5. Offer to write the recommendation beside it as new.conf

    Without an existing postgresql.conf the recommendation is saved as
    recommended_<timestamp>.conf in the output directory.

    [bold]Environment:[/bold]
        PGADVISOR_POSTGRESQL_CONF  Use this postgresql.conf
        PGADVISOR_OUTPUT_DIR       Directory for standalone recommendations

    [bold]Examples:[/bold]

        # Interactive run
        sudo pgadvisor run

        # Accept the candidate file without prompting
        sudo pgadvisor run --yes
    """
    from pgadvisor.commands.run import run_analysis

    ctx = get_context(
        yes=yes,
        verbose=verbose,
        quiet=quiet,
        no_color=no_color,
        config=config,
    )

    try:
        audit = setup_audit(ctx)
    except AdvisorError as e:
        handle_error(e)

    audit.log_session_start("run")
    try:
        run_analysis(ctx, audit=audit)
    except AdvisorError as e:
        audit.log_session_end(e.exit_code)
        handle_error(e)
    audit.log_session_end(0)


@app.command("recommend")
def recommend_cmd(
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Print the recommended postgresql.conf without changing any file.

    Missing facts only produce warnings here; the settings derived from
    them are left out.

    [bold]Examples:[/bold]

        pgadvisor recommend
        pgadvisor recommend -q > recommended.conf
    """
    from pgadvisor.commands.run import preview_recommendation

    ctx = get_context(verbose=verbose, quiet=quiet, no_color=no_color, config=config)

    try:
        preview_recommendation(ctx)
    except AdvisorError as e:
        handle_error(e)


# ============================================================================
# Config commands
# ============================================================================

@config_app.command("show")
def config_show(
    config: ConfigOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
) -> None:
    """Show current configuration.

    Displays the loaded configuration and the environment overrides.
    """
    ctx = get_context(verbose=verbose, no_color=no_color, config=config)

    try:
        app_config = ctx.config

        ctx.console.print()
        ctx.console.print(f"[bold]Configuration file:[/bold] {ctx.config_path}")
        ctx.console.print(f"[bold]File exists:[/bold] {ctx.config_path.exists()}")
        ctx.console.print()

        ctx.console.yaml(app_config.config.to_yaml(), title="Configuration")

        overrides = app_config.overrides
        ctx.console.summary("Environment overrides", {
            "PGADVISOR_POSTGRESQL_CONF": str(overrides.postgresql_conf or "Not set"),
            "PGADVISOR_OUTPUT_DIR": str(overrides.output_dir or "Not set"),
        })

    except AdvisorError as e:
        handle_error(e)


@config_app.command("init")
def config_init(
    config: ConfigOption = None,
    force: ForceOption = False,
    no_color: NoColorOption = False,
) -> None:
    """Initialize a new configuration file.

    Creates a configuration file with the defaults and comments.
    """
    ctx = get_context(no_color=no_color, config=config)
    config_path = ctx.config_path

    try:
        init_config(config_path, force=force)
        ctx.console.success(f"Configuration file created: {config_path}")
        ctx.console.info("Edit the file to customize settings, then run: pgadvisor run")

    except AdvisorError as e:
        handle_error(e)


@config_app.command("validate")
def config_validate(
    config: ConfigOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
) -> None:
    """Validate configuration file.

    Checks that the configuration file exists, is valid YAML,
    and all values pass validation.
    """
    ctx = get_context(verbose=verbose, no_color=no_color, config=config)

    try:
        # Raises ConfigurationError if missing or invalid
        advisor_config = AdvisorConfig.load(ctx.config_path)
        app_config = AppConfig(config_path=ctx.config_path, config=advisor_config)

        ctx.console.success(f"Configuration is valid: {ctx.config_path}")

        if ctx.is_verbose:
            ctx.console.yaml(app_config.config.to_yaml())

        recommendation_dir = app_config.recommendation_dir
        if not recommendation_dir.is_dir():
            ctx.console.warn(f"Recommendation directory does not exist yet: {recommendation_dir}")

    except AdvisorError as e:
        handle_error(e)


@config_app.command("example")
def config_example(no_color: NoColorOption = False) -> None:
    """Print example configuration file."""
    ctx = get_context(no_color=no_color)
    ctx.console.plain(get_example_config())


if __name__ == "__main__":
    app()
