"""swm command line: ``swm migrate`` and ``swm config``."""

import shutil
from pathlib import Path
from typing import Any, Optional, Annotated

import typer

from swm import __version__
from swm.commands.structure import run_structure_migration
from swm.commands.sync import run_sync_migration
from swm.core.audit import AuditEventType, configure_audit_logger
from swm.core.context import ExecutionContext, create_context
from swm.core.output import console as app_console
from swm.core.config import (
    DEFAULT_CONFIG_PATH,
    AppConfig,
    get_example_config,
    init_config,
)
from swm.core.exceptions import ConfigurationError, PrerequisiteError, SWMError
from swm.core.executor import CommandExecutor
from swm.core.lock import MigrationLock
from swm.core.request import MigrationMethod, MigrationRequest, build_request
from swm.core.workspace import run_workspace
from swm.services.remote import RemoteShell


app = typer.Typer(
    name="swm",
    help="SiteWorx account migration between InterWorx servers.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
)
config_app = typer.Typer(name="config", help="Inspect and create the swm configuration file.", no_args_is_help=True)
app.add_typer(config_app, name="config")

# Local tools each method needs; mysqldump runs on the source server
REQUIRED_TOOLS: dict[MigrationMethod, tuple[str, ...]] = {
    MigrationMethod.STRUCTURE_ONLY: ("ssh", "scp"),
    MigrationMethod.SYNC: ("ssh", "rsync", "mysql"),
}

DryRunOption = Annotated[bool, typer.Option(
    "--dry-run", help="Show what would change. Lookups on both servers still run.",
)]
YesOption = Annotated[bool, typer.Option("--yes", "-y", help="Do not ask before migrating.")]
ForceOption = Annotated[bool, typer.Option("--force", "-f", help="Replace an existing configuration file.")]
VerboseOption = Annotated[int, typer.Option(
    "--verbose", "-v", count=True, help="Show commands and lookups (-v), or everything (-vv).",
)]
QuietOption = Annotated[bool, typer.Option("--quiet", "-q", help="Only print warnings and errors.")]
NoColorOption = Annotated[bool, typer.Option("--no-color", help="Plain output without colors.")]
ConfigOption = Annotated[Optional[Path], typer.Option(
    "--config", "-c", dir_okay=False, help=f"YAML configuration file [default: {DEFAULT_CONFIG_PATH}]",
)]


def version_callback(value: bool) -> None:
    if value:
        app_console.print(f"swm version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[bool, typer.Option(
        "--version", "-V", callback=version_callback, is_eager=True, help="Print the version.",
    )] = False,
) -> None:
    """SiteWorx account migration between InterWorx servers.

    Run on the destination server. The source server must accept this
    server's SSH key.

    [bold]Examples:[/bold]
        swm migrate --source=old.example.net --domain=example.com --method=structure-only
        swm migrate --source=old.example.net --domain=example.com --method=sync
        swm config show
    """


def handle_error(error: SWMError) -> None:
    """Handle an SWMError by printing formatted error and exiting."""
    app_console.error(error.message)

    if error.details:
        for detail in error.details:
            app_console.print_error(f"  [dim]{detail}[/dim]")

    if error.hint:
        app_console.hint(error.hint)

    raise typer.Exit(error.exit_code)


def check_prerequisites(method: MigrationMethod) -> None:
    """Make sure the local tools the method shells out to are installed.

    Raises:
        PrerequisiteError: If any tool is missing
    """
    missing = [tool for tool in REQUIRED_TOOLS[method] if shutil.which(tool) is None]
    if missing:
        raise PrerequisiteError(
            f"Required commands not found: {', '.join(missing)}",
            hint="Install openssh-client, rsync and the MySQL/MariaDB client",
        )


def _result_details(request: MigrationRequest, result: Any) -> dict[str, Any]:
    details: dict[str, Any] = {"Domain": request.domain, "Source": request.source}

    if request.method is MigrationMethod.STRUCTURE_ONLY:
        details["Primary IP"] = result.primary_ip
        if result.username:
            details["Linux username"] = result.username
        if result.archive_kept:
            details["Archive"] = str(result.artifact.local_path)
    else:
        outcome = result.databases
        details["Linux username"] = result.identity.username
        details["Databases"] = ", ".join(outcome.databases) or "none"
        details["Users / grants"] = f"{outcome.users_applied} / {outcome.grants_applied}"
        if outcome.warnings:
            details["Warnings"] = "; ".join(outcome.warnings)

    return details


def execute_migration(ctx: ExecutionContext, request: MigrationRequest) -> dict[str, Any]:
    """Probe the source server and run the requested workflow.

    Returns:
        Key/value details for the operation summary
    """
    config = ctx.config
    executor = CommandExecutor(ctx)
    remote = RemoteShell(ctx, executor, request.source, request.port, config.ssh)

    ctx.console.step("Testing SSH connection to source server...")
    remote.test_connection()
    ctx.console.success("SSH connection successful")

    with run_workspace(Path(config.paths.work_dir), cleanup=request.cleanup) as workspace:
        if request.method is MigrationMethod.STRUCTURE_ONLY:
            result = run_structure_migration(ctx, request, executor, remote, workspace)
        else:
            result = run_sync_migration(ctx, request, executor, remote, workspace)

    return _result_details(request, result)


# ---------------------------------------------------------------------------
# swm migrate
# ---------------------------------------------------------------------------

@app.command("migrate")
def migrate(
    source: Annotated[
        Optional[str],
        typer.Option("--source", "-s", help="Source server hostname or IP."),
    ] = None,
    domain: Annotated[
        Optional[str],
        typer.Option("--domain", "-d", help="Primary domain of the SiteWorx account."),
    ] = None,
    method: Annotated[
        Optional[str],
        typer.Option("--method", "-m", help="Migration method: structure-only or sync."),
    ] = None,
    port: Annotated[
        int,
        typer.Option("--port", "-p", help="SSH port of the source server."),
    ] = 22,
    no_cleanup: Annotated[
        bool,
        typer.Option("--no-cleanup", help="Keep the transferred archive and temporary files."),
    ] = False,
    dry_run: DryRunOption = False,
    yes: YesOption = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Migrate a SiteWorx account from another server to this one.

    [bold]Methods:[/bold]
    - structure-only: re-create the account (no files, no databases)
    - sync: copy the home directory and MySQL databases into an account
      created by a previous structure-only run

    [bold]Examples:[/bold]

        # First create the account
        swm migrate --source=old.example.net --domain=example.com --method=structure-only

        # Then copy its content (repeatable)
        swm migrate --source=old.example.net --domain=example.com --method=sync

        # Preview without changing anything
        swm migrate --source=old.example.net --domain=example.com --method=sync --dry-run
    """
    ctx = create_context(
        dry_run=dry_run,
        yes=yes,
        verbose=verbose,
        quiet=quiet,
        no_color=no_color,
        config=config,
    )

    try:
        request = build_request(source, domain, method, port=port, cleanup=not no_cleanup)
        app_config = ctx.config
    except SWMError as e:
        handle_error(e)
        return

    audit = configure_audit_logger(
        log_path=Path(app_config.audit.log_path),
        enabled=app_config.audit.enabled,
    )
    event_type = (
        AuditEventType.MIGRATE_STRUCTURE
        if request.method is MigrationMethod.STRUCTURE_ONLY
        else AuditEventType.MIGRATE_SYNC
    )

    ctx.console.summary("Migration", {
        "Source": f"{request.source}:{request.port}",
        "Domain": request.domain,
        "Method": request.method.value,
        "Cleanup": request.cleanup,
        "Dry run": ctx.dry_run,
    })

    if ctx.should_confirm:
        if not ctx.console.confirm("Proceed with migration?"):
            ctx.console.warn("Operation cancelled")
            raise typer.Exit(1)

    audit.log_session_start("migrate", {
        "source": request.source,
        "port": request.port,
        "domain": request.domain,
        "method": request.method.value,
        "cleanup": request.cleanup,
        "dry_run": ctx.dry_run,
    })

    exit_code = 0
    try:
        with audit.migration(request.source, request.domain, request.method.value):
            try:
                check_prerequisites(request.method)
                with MigrationLock(Path(app_config.paths.lock_dir), request.source, request.domain):
                    details = execute_migration(ctx, request)
            except SWMError as e:
                exit_code = e.exit_code
                audit.log_failure(event_type, "domain", request.domain, error=str(e))
                ctx.console.operation_summary(
                    f"Migration ({request.method.value})",
                    success=False,
                    details={"Domain": request.domain, "Source": request.source, "Error": str(e)},
                )
                handle_error(e)

            if ctx.dry_run:
                audit.log_dry_run(event_type, "domain", request.domain, message="Preview only")
            else:
                audit.log_success(
                    event_type, "domain", request.domain,
                    message=f"Migrated from {request.source}",
                )
    finally:
        audit.log_session_end(exit_code)

    ctx.console.operation_summary(f"Migration ({request.method.value})", success=True, details=details)
    ctx.console.success("Migration completed!")


# ---------------------------------------------------------------------------
# swm config
# ---------------------------------------------------------------------------

def _config_warnings(app_config: AppConfig) -> list[str]:
    """Settings that load fine but will probably break a migration."""
    warnings = []
    identity_file = app_config.ssh.identity_file
    if identity_file and not identity_file.exists():
        warnings.append(f"ssh.identity_file does not exist: {identity_file}")
    if app_config.ssh.strict_host_key_checking == "no":
        warnings.append("ssh.strict_host_key_checking is 'no'; source host keys are not verified")
    for tool in ("import.pex", "listaccounts.pex"):
        if not Path(app_config.siteworx.tool(tool)).exists():
            warnings.append(f"{app_config.siteworx.tool(tool)} not found on this server")
    return warnings


@config_app.command("show")
def config_show(config: ConfigOption = None, no_color: NoColorOption = False) -> None:
    """Print the effective configuration, after environment overrides."""
    ctx = create_context(no_color=no_color, config=config)
    try:
        app_config = ctx.config
    except SWMError as e:
        handle_error(e)
        return

    source = str(ctx.config_path) if ctx.config_path.exists() else f"{ctx.config_path} (missing, defaults)"
    ctx.console.yaml(app_config.config.to_yaml(), title=source)
    ctx.console.summary("Environment", {
        "SWM_SSH_USER": app_config.env.ssh_user,
        "SWM_SSH_IDENTITY_FILE": app_config.env.ssh_identity_file,
    })


@config_app.command("init")
def config_init(
    config: ConfigOption = None,
    force: ForceOption = False,
    no_color: NoColorOption = False,
) -> None:
    """Write the commented default configuration file."""
    ctx = create_context(no_color=no_color, config=config)
    try:
        init_config(ctx.config_path, force=force)
    except SWMError as e:
        handle_error(e)
    ctx.console.success(f"Wrote {ctx.config_path}")


@config_app.command("validate")
def config_validate(
    config: ConfigOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
) -> None:
    """Check that the configuration file exists and every value is valid.

    Exits 2 when it does not. Suspicious but valid settings only warn.
    """
    ctx = create_context(verbose=verbose, no_color=no_color, config=config)
    try:
        if not ctx.config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {ctx.config_path}",
                hint="Create it with: swm config init",
            )
        app_config = AppConfig(config_path=ctx.config_path)
    except SWMError as e:
        handle_error(e)
        return

    ctx.console.success(f"Configuration is valid: {ctx.config_path}")
    if ctx.is_verbose:
        ctx.console.yaml(app_config.config.to_yaml())
    for warning in _config_warnings(app_config):
        ctx.console.warn(warning)


@config_app.command("example")
def config_example() -> None:
    """Print a commented example configuration."""
    app_console.print(get_example_config(), highlight=False, markup=False, soft_wrap=True)
