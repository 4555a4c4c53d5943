"""Main CLI entry point."""

import json
import sys
from datetime import datetime, timezone
from typing import Callable, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from cutover.collaborators import (
    Collaborators,
    FileFeatureFlagStore,
    HealthChecker,
    HttpHealthProbe,
    NamedCheck,
    PreflightChecker,
)
from cutover.collaborators.checks import directory_writable, env_vars_present, probe_target, tools_on_path
from cutover.collaborators.shell import (
    GitVersionControl,
    PgDataRestorer,
    ShellArtifactBuilder,
    ShellDependencyInstaller,
    ShellEnvironmentMigrator,
    ShellSchemaMigrator,
    ShellServiceController,
)
from cutover.config.parser import DEFAULT_CONFIG_FILE, Config, ConfigValidationError
from cutover.observer import EventLog
from cutover.orchestrator import (
    DeploymentOptions,
    DeploymentOrchestrator,
    ExecutionResult,
    ReleaseSettings,
    RollbackOptions,
    RollbackPipeline,
    RollbackResult,
    RolloutStep,
    StepStatus,
    build_release_plan,
    env_confirmation,
)
from cutover.snapshot import SnapshotService
from cutover.utils.errors import DeploymentError
from cutover.utils.logging import get_logger, setup_logging
from cutover.utils.retry import RetryStrategy

console = Console()
logger = get_logger(__name__)


@click.group()
@click.option('--log-level', type=click.Choice(['debug', 'info', 'warning', 'error']),
              help='Overrides logging.level from the configuration')
@click.option('--config', 'config_path', default=DEFAULT_CONFIG_FILE, help='Path to configuration file')
@click.pass_context
def cli(ctx, log_level, config_path):
    """Phased deployment and disaster-recovery rollback."""
    ctx.ensure_object(dict)
    ctx.obj['log_level'] = log_level
    ctx.obj['config_path'] = config_path

    # Console logging until the configuration says otherwise
    setup_logging(log_level or 'info')


def load_config(config_path: str = DEFAULT_CONFIG_FILE) -> Config:
    """Load and validate configuration file."""
    try:
        config = Config(config_path)
        config.load()
        return config
    except FileNotFoundError:
        console.print(f"[red]Error:[/red] Configuration file not found: {config_path}")
        sys.exit(1)
    except ConfigValidationError as e:
        console.print("[red]Configuration validation failed:[/red]\n")
        console.print(str(e))
        sys.exit(1)


def load_project(ctx) -> Config:
    """Load the configuration named on the command line and apply its logging section."""
    obj = ctx.find_root().obj
    config = load_config(obj['config_path'])

    log_settings = config.settings.logging
    log_dir = str(config.resolve_path(log_settings.directory)) if log_settings.directory else None
    if log_dir or obj['log_level'] is None:
        setup_logging(obj['log_level'] or log_settings.level, log_dir)
    return config


def build_collaborators(config: Config) -> Collaborators:
    """Create the shell-backed collaborators described by the configuration."""
    settings = config.settings
    cwd = str(config.project_dir)
    commands = settings.commands

    probe = None
    health = None
    if settings.health.base_url:
        probe = HttpHealthProbe(
            settings.health.base_url,
            accepted_statuses=settings.health.endpoints,
            timeout=settings.health.timeout_seconds,
            retry=RetryStrategy(max_retries=settings.health.retries, base_delay=0.5, max_delay=5.0),
        )
        health = HealthChecker([
            NamedCheck(name=f"endpoint {target}", fn=probe_target(probe, target))
            for target in settings.health.endpoints
        ])

    service = None
    if commands.restart or (commands.stop and commands.start):
        service = ShellServiceController(
            stop_command=commands.stop,
            start_command=commands.start,
            restart_command=commands.restart,
            cwd=cwd,
        )

    snapshot_dir = config.resolve_path(settings.snapshot.directory)
    preflight = PreflightChecker()
    if settings.preflight.required_env:
        preflight.add_check("required environment", env_vars_present(settings.preflight.required_env))
    if settings.preflight.warn_env:
        preflight.add_check("optional environment", env_vars_present(settings.preflight.warn_env), critical=False)
    if settings.preflight.required_tools:
        preflight.add_check("required tools", tools_on_path(settings.preflight.required_tools))
    preflight.add_check("snapshot directory writable", directory_writable(str(snapshot_dir)))

    return Collaborators(
        flags=FileFeatureFlagStore(str(config.resolve_path(settings.deploy.flags_file))),
        environment=ShellEnvironmentMigrator(commands.env_migrate, cwd=cwd) if commands.env_migrate else None,
        schema=ShellSchemaMigrator(
            commands.migrate,
            revert_command=commands.migrate_revert,
            validate_command=commands.migrate_validate,
            cwd=cwd,
        ) if commands.migrate else None,
        builder=ShellArtifactBuilder(commands.build, cwd=cwd) if commands.build else None,
        service=service,
        probe=probe,
        data=PgDataRestorer(settings.database.url_env) if settings.database.enabled else None,
        vcs=GitVersionControl(cwd),
        deps=ShellDependencyInstaller(commands.install, project_dir=cwd) if commands.install else None,
        preflight=preflight,
        health=health,
    )


def build_release_settings(config: Config) -> ReleaseSettings:
    deploy = config.settings.deploy
    return ReleaseSettings(
        features=list(deploy.features),
        probe_targets=list(config.settings.health.endpoints),
        rollout_steps=[RolloutStep(feature=s.feature, percentage=s.percentage) for s in deploy.rollout],
        rollout_interval=deploy.rollout_interval_seconds,
    )


def create_snapshot_service(config: Config, collaborators: Collaborators) -> SnapshotService:
    settings = config.settings.snapshot
    return SnapshotService(
        str(config.resolve_path(settings.directory)),
        project_dir=str(config.project_dir),
        config_files=settings.config_files,
        manifest_files=settings.manifest_files,
        vcs=collaborators.vcs,
        data=collaborators.data,
    )


def create_event_log(config: Config, kind: str) -> EventLog:
    """Event log for one run, written to the logging directory when one is configured."""
    directory = config.settings.logging.directory
    if not directory:
        return EventLog()
    stamp = datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%SZ')
    return EventLog(log_path=str(config.resolve_path(directory) / f"{kind}-{stamp}.log"))


def create_orchestrator(
    config: Config,
    collaborators: Collaborators,
    event_log: EventLog,
    progress_callback: Optional[Callable] = None,
) -> DeploymentOrchestrator:
    """Create deployment orchestrator with all dependencies."""
    return DeploymentOrchestrator(
        event_log=event_log,
        preflight=collaborators.preflight,
        snapshots=create_snapshot_service(config, collaborators),
        dry_run_delay=config.settings.deploy.dry_run_delay_ms / 1000,
        progress_callback=progress_callback,
    )


def create_pipeline(
    config: Config,
    collaborators: Collaborators,
    event_log: EventLog,
    confirm: Optional[Callable[[], bool]] = None,
    progress_callback: Optional[Callable] = None,
) -> RollbackPipeline:
    """Create rollback pipeline with all dependencies."""
    return RollbackPipeline(
        snapshots=create_snapshot_service(config, collaborators),
        data=collaborators.data,
        vcs=collaborators.vcs,
        deps=collaborators.deps,
        service=collaborators.service,
        health=collaborators.health,
        project_dir=str(config.project_dir),
        confirm=confirm,
        event_log=event_log,
        dry_run_delay=config.settings.deploy.dry_run_delay_ms / 1000,
        progress_callback=progress_callback,
    )


class RichProgressCallback:
    """Progress callback that displays phase and step transitions using Rich."""

    def __init__(self, progress: Progress, task_id, total: int):
        self.progress = progress
        self.task_id = task_id
        self.completed = 0
        self.progress.update(self.task_id, total=total)

    def __call__(self, name: str, status: StepStatus, message: Optional[str]) -> None:
        if status == StepStatus.IN_PROGRESS:
            self.progress.update(self.task_id, description=f"[cyan]Running:[/cyan] {name}")
            return

        if status == StepStatus.SUCCESS:
            marker = "[green]✓[/green]"
        elif status == StepStatus.TOLERATED:
            marker = "[yellow]⚠[/yellow]"
        elif status == StepStatus.SKIPPED:
            marker = "[dim]-[/dim]"
        else:
            marker = "[red]✗[/red]"

        self.completed += 1
        self.progress.update(self.task_id, completed=self.completed, description=f"{marker} {name}")
        self.progress.console.print(f"  {marker} {name}" + (f": {message}" if message else ""))


def _progress() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    )


def _print_error(error: Optional[DeploymentError]) -> None:
    if error is None:
        return
    console.print(f"\n[red]{error.to_user_message()}[/red]")


def print_deployment_result(result: ExecutionResult) -> None:
    console.print()
    if result.success:
        console.print(Panel.fit(
            f"[green]✓ Deployment successful[/green]\n\n"
            f"Completed phases: {len(result.completed_phases)}\n"
            f"Downtime: {result.downtime_ms:.0f}ms\n"
            f"Duration: {result.total_duration_ms / 1000:.2f}s\n"
            f"Snapshot: {result.snapshot_ref or 'none'}",
            title="Deployment Complete",
            border_style="green"
        ))
    else:
        console.print(Panel.fit(
            f"[red]✗ Deployment failed[/red]\n\n"
            f"Failed phase: {result.failed_phase or 'before any phase'}\n"
            f"Completed phases: {', '.join(result.completed_phases) or 'none'}\n"
            f"Duration: {result.total_duration_ms / 1000:.2f}s\n"
            f"Snapshot: {result.snapshot_ref or 'none'}",
            title="Deployment Failed",
            border_style="red"
        ))
        _print_error(result.error)

    if result.tolerated_failures:
        console.print("\n[bold]Tolerated failures:[/bold]")
        for name, message in result.tolerated_failures.items():
            console.print(f"  [yellow]⚠[/yellow] {name}: {message}")

    if result.compensation:
        console.print("\n[bold]Compensation:[/bold]")
        for name in result.compensation.compensated:
            console.print(f"  [green]✓[/green] {name}")
        for name, message in result.compensation.failed.items():
            console.print(f"  [red]✗[/red] {name}: {message}")
        if not result.compensation.is_clean():
            console.print("\n[red]Some phases could not be compensated; run 'cutover rollback' to recover[/red]")


def print_rollback_result(result: RollbackResult) -> None:
    console.print()
    if result.success:
        console.print(Panel.fit(
            f"[green]✓ Rollback successful[/green]\n\n"
            f"Completed steps: {len(result.completed_steps)}\n"
            f"Skipped steps: {', '.join(result.skipped_steps) or 'none'}\n"
            f"Duration: {result.total_duration_ms / 1000:.2f}s\n"
            f"Snapshot: {result.snapshot_ref or 'none'}",
            title="Rollback Complete",
            border_style="green"
        ))
    else:
        console.print(Panel.fit(
            f"[red]✗ Rollback failed[/red]\n\n"
            f"Failed step: {result.failed_step or 'before any step'}\n"
            f"Completed steps: {', '.join(result.completed_steps) or 'none'}\n"
            f"Duration: {result.total_duration_ms / 1000:.2f}s",
            title="Rollback Failed",
            border_style="red"
        ))
        _print_error(result.error)
        console.print("\n[red]Manual intervention required[/red]")

    if result.tolerated_failures:
        console.print("\n[bold]Tolerated failures:[/bold]")
        for name, message in result.tolerated_failures.items():
            console.print(f"  [yellow]⚠[/yellow] {name}: {message}")


@cli.command()
@click.option('--dry-run', is_flag=True, help='Simulate phases without changing anything')
@click.option('--skip-preflight', is_flag=True, help='Skip pre-deployment checks')
@click.option('--skip-backup', is_flag=True, help='Skip the pre-deployment snapshot')
@click.option('--skip-environment', is_flag=True, help='Skip the environment migration phase')
@click.option('--no-compensate', is_flag=True, help='Leave completed phases in place on failure')
@click.option('--no-progressive-rollout', is_flag=True, help='Skip the progressive rollout phase')
@click.option('--max-downtime-ms', type=click.IntRange(min=1), help='Downtime budget for the cutover phase')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
@click.pass_context
def deploy(ctx, dry_run, skip_preflight, skip_backup, skip_environment, no_compensate,
           no_progressive_rollout, max_downtime_ms, as_json):
    """Run a phased deployment."""
    cfg = load_project(ctx)
    options = DeploymentOptions(
        skip_preflight=skip_preflight,
        skip_backup=skip_backup,
        skip_environment_step=skip_environment,
        dry_run=dry_run,
        compensate_on_failure=not no_compensate,
        progressive_rollout=not no_progressive_rollout,
        max_downtime_ms=max_downtime_ms or cfg.settings.deploy.max_downtime_ms,
    )

    try:
        collaborators = build_collaborators(cfg)
        plan = build_release_plan(collaborators, options, build_release_settings(cfg))
    except DeploymentError as e:
        console.print(f"[red]Deployment error:[/red] {e}")
        sys.exit(1)

    if not as_json:
        console.print(Panel.fit(
            f"[bold]Deploying {cfg.settings.project.name}[/bold]\n"
            f"Phases: {', '.join(plan.names) or 'none'}\n"
            f"Dry run: {'yes' if dry_run else 'no'}\n"
            f"Max downtime: {options.max_downtime_ms:.0f}ms\n"
            f"Compensate on failure: {'enabled' if options.compensate_on_failure else 'disabled'}",
            title="Deployment Configuration",
            border_style="cyan"
        ))

    with create_event_log(cfg, "deploy") as event_log:
        if as_json:
            result = create_orchestrator(cfg, collaborators, event_log).deploy(plan, options)
        else:
            with _progress() as progress:
                task_id = progress.add_task("[cyan]Starting deployment...", total=None)
                callback = RichProgressCallback(progress, task_id, len(plan))
                result = create_orchestrator(cfg, collaborators, event_log, callback).deploy(plan, options)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        print_deployment_result(result)

    if not result.success:
        sys.exit(1)


@cli.command()
@click.option('--snapshot', 'snapshot_ref', help='Snapshot id or path (latest when omitted)')
@click.option('--backup', 'backup_path', help='Data dump to restore instead of the snapshot\'s')
@click.option('--no-data', is_flag=True, help='Do not restore data')
@click.option('--no-code', is_flag=True, help='Do not revert code')
@click.option('--no-config', is_flag=True, help='Do not restore configuration files')
@click.option('--skip-confirmation', '-y', is_flag=True, help='Skip confirmation prompt')
@click.option('--dry-run', is_flag=True, help='Simulate steps without changing anything')
@click.option('--json', 'as_json', is_flag=True,
              help='Print the result as JSON; never prompts, so confirm with -y or ROLLBACK_CONFIRMED')
@click.pass_context
def rollback(ctx, snapshot_ref, backup_path, no_data, no_code, no_config, skip_confirmation, dry_run, as_json):
    """Restore a known-good state from a snapshot."""
    cfg = load_project(ctx)
    options = RollbackOptions(
        snapshot_ref=snapshot_ref,
        backup_path=backup_path,
        restore_data=not no_data,
        restore_code=not no_code,
        restore_config=not no_config,
        skip_confirmation=skip_confirmation,
        dry_run=dry_run,
    )

    from_env = env_confirmation()

    def confirm() -> bool:
        if from_env():
            return True
        # No prompt in JSON mode
        if as_json:
            return False
        console.print(Panel.fit(
            "[bold red]⚠ WARNING: This will stop the service and restore data, code and configuration[/bold red]\n\n"
            f"Project: {cfg.settings.project.name}\n"
            f"Snapshot: {snapshot_ref or 'latest'}",
            title="Rollback",
            border_style="red"
        ))
        return click.confirm("Are you sure you want to roll back?", default=False)

    try:
        collaborators = build_collaborators(cfg)
    except DeploymentError as e:
        console.print(f"[red]Rollback error:[/red] {e}")
        sys.exit(1)

    with create_event_log(cfg, "rollback") as event_log:
        pipeline = create_pipeline(cfg, collaborators, event_log, confirm=confirm)
        result = pipeline.rollback(options)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        print_rollback_result(result)

    if not result.success:
        sys.exit(1)


@cli.command()
@click.option('--json', 'as_json', is_flag=True, help='Print the report as JSON')
@click.pass_context
def preflight(ctx, as_json):
    """Run pre-deployment checks without deploying."""
    cfg = load_project(ctx)
    report = build_collaborators(cfg).preflight.run()

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        table = Table(title="Pre-deployment Checks")
        table.add_column("Check", style="cyan")
        table.add_column("Critical")
        table.add_column("Result")
        table.add_column("Message")
        for r in report.results:
            outcome = "[green]✓ pass[/green]" if r.success else (
                "[red]✗ fail[/red]" if r.critical else "[yellow]⚠ warn[/yellow]"
            )
            table.add_row(r.name, "yes" if r.critical else "no", outcome, r.message)
        console.print(table)
        console.print(
            f"\n{report.critical_failure_count} critical failures, {report.warning_count} warnings"
        )

    if not report.success:
        sys.exit(1)


@cli.group()
def snapshot():
    """Manage recovery snapshots."""
    pass


@snapshot.command('create')
@click.pass_context
def snapshot_create(ctx):
    """Capture a snapshot now."""
    cfg = load_project(ctx)
    service = create_snapshot_service(cfg, build_collaborators(cfg))
    try:
        ref = service.capture(options={"source": "cli"})
    except DeploymentError as e:
        console.print(f"[red]Snapshot error:[/red] {e}")
        sys.exit(1)
    console.print(f"[green]✓[/green] Snapshot created: {ref.snapshot_id}")
    console.print(f"  Location: {ref.location}")


@snapshot.command('list')
@click.pass_context
def snapshot_list(ctx):
    """List snapshots, newest first."""
    cfg = load_project(ctx)
    service = create_snapshot_service(cfg, build_collaborators(cfg))
    refs = service.list_snapshots()
    if not refs:
        console.print("[yellow]No snapshots found[/yellow]")
        return

    table = Table(title="Snapshots")
    table.add_column("ID", style="cyan")
    table.add_column("Timestamp")
    table.add_column("Revision")
    table.add_column("Data backup")
    for ref in refs:
        try:
            snap = service.resolve(ref)
        except DeploymentError as e:
            table.add_row(ref.snapshot_id, "[red]unreadable[/red]", "", e.message)
            continue
        table.add_row(
            snap.snapshot_id,
            snap.timestamp.isoformat(),
            (snap.revision_id or "-")[:12],
            snap.data_backup or "-",
        )
    console.print(table)


@snapshot.command('show')
@click.argument('snapshot_id')
@click.pass_context
def snapshot_show(ctx, snapshot_id):
    """Show the contents of a snapshot."""
    cfg = load_project(ctx)
    service = create_snapshot_service(cfg, build_collaborators(cfg))
    try:
        snap = service.resolve(snapshot_id)
    except DeploymentError as e:
        console.print(f"[red]Snapshot error:[/red] {e}")
        sys.exit(1)
    click.echo(json.dumps(snap.summary(), indent=2))


@snapshot.command('cleanup')
@click.option('--max-age-days', type=click.IntRange(min=1), help='Delete snapshots older than this')
@click.pass_context
def snapshot_cleanup(ctx, max_age_days):
    """Delete old snapshots, always keeping the newest."""
    cfg = load_project(ctx)
    service = create_snapshot_service(cfg, build_collaborators(cfg))
    deleted = service.cleanup(max_age_days or cfg.settings.snapshot.retention_days)
    console.print(f"Deleted {len(deleted)} snapshots")


if __name__ == '__main__':
    cli()
