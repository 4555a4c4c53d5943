"""Shell-backed collaborators that drive real tools through subprocesses."""

import os
import shlex
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Union
from urllib.parse import urlparse

from cutover.collaborators.base import (
    ArtifactBuilder,
    DataRestorer,
    DependencyInstaller,
    EnvironmentMigrator,
    SchemaMigrator,
    ServiceController,
    VersionControl,
)
from cutover.utils.errors import (
    ConfigurationError,
    ErrorContext,
    InfrastructureError,
    error_handler,
)
from cutover.utils.logging import get_logger
from cutover.utils.retry import RetryStrategy

logger = get_logger(__name__)

Command = Union[str, Sequence[str]]

DEFAULT_COMMAND_TIMEOUT = 600.0


def run_command(
    command: Command,
    cwd: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = DEFAULT_COMMAND_TIMEOUT,
    operation: Optional[str] = None,
) -> str:
    """Run an external command and return its standard output.

    Args:
        command: Command line string (split with shlex) or argument list
        cwd: Working directory
        env: Extra environment variables layered over the current environment
        timeout: Seconds before the command is killed
        operation: Short description used in error context

    Returns:
        Captured standard output, stripped

    Raises:
        InfrastructureError: If the command cannot start or exits non-zero
        OperationTimeout: If the command exceeds its timeout
    """
    args = shlex.split(command) if isinstance(command, str) else [str(part) for part in command]
    full_env = {**os.environ, **env} if env else None
    printable = " ".join(shlex.quote(arg) for arg in args)

    logger.debug(f"Executing: {printable}")
    try:
        completed = subprocess.run(
            args,
            cwd=cwd,
            env=full_env,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=True,
        )
    except (subprocess.SubprocessError, OSError) as e:
        raise error_handler.handle_exception(
            e, ErrorContext(operation=operation, command=printable)
        ) from e

    return completed.stdout.strip()


def tool_available(name: str) -> bool:
    """Whether an executable is on PATH."""
    return shutil.which(name) is not None


class ShellEnvironmentMigrator(EnvironmentMigrator):
    """Runs a configured environment migration command."""

    def __init__(self, command: Command, cwd: Optional[str] = None):
        self.command = command
        self.cwd = cwd

    def migrate(self) -> None:
        run_command(self.command, cwd=self.cwd, operation="environment migration")


class ShellSchemaMigrator(SchemaMigrator):
    """Applies migrations with a CLI tool such as ``prisma migrate deploy``."""

    def __init__(
        self,
        apply_command: Command,
        revert_command: Optional[Command] = None,
        validate_command: Optional[Command] = None,
        cwd: Optional[str] = None,
    ):
        self.apply_command = apply_command
        self.revert_command = revert_command
        self.validate_command = validate_command
        self.cwd = cwd

    def apply(self) -> None:
        logger.info("Applying database schema migrations")
        run_command(self.apply_command, cwd=self.cwd, operation="schema migration")

    def revert(self) -> None:
        if not self.revert_command:
            # No down-migration configured: restoring the backup is the only way back
            raise InfrastructureError(
                "No schema revert command configured",
                suggestions=["Restore the database from the pre-deployment snapshot"],
            )
        logger.warning("Reverting database schema migrations")
        run_command(self.revert_command, cwd=self.cwd, operation="schema revert")

    def validate(self) -> bool:
        if not self.validate_command:
            return True
        try:
            run_command(self.validate_command, cwd=self.cwd, operation="schema validation")
        except InfrastructureError as e:
            logger.error(f"Schema validation failed: {e}")
            return False
        return True


class ShellArtifactBuilder(ArtifactBuilder):
    """Builds the application with a configured command (``pnpm build`` and the like)."""

    def __init__(self, command: Command, cwd: Optional[str] = None, timeout: float = 1800.0):
        self.command = command
        self.cwd = cwd
        self.timeout = timeout

    def build(self) -> None:
        logger.info("Building application artifact")
        run_command(self.command, cwd=self.cwd, timeout=self.timeout, operation="artifact build")


class ShellServiceController(ServiceController):
    """Controls the service through stop/start/restart commands."""

    def __init__(
        self,
        stop_command: Optional[Command] = None,
        start_command: Optional[Command] = None,
        restart_command: Optional[Command] = None,
        cwd: Optional[str] = None,
    ):
        if not restart_command and not (stop_command and start_command):
            raise ConfigurationError(
                "Service control needs a restart command or both stop and start commands"
            )
        self.stop_command = stop_command
        self.start_command = start_command
        self.restart_command = restart_command
        self.cwd = cwd

    def cutover(self) -> None:
        if self.restart_command:
            run_command(self.restart_command, cwd=self.cwd, operation="service restart")
            return
        self.stop()
        self.start()

    def stop(self) -> None:
        if self.stop_command:
            run_command(self.stop_command, cwd=self.cwd, operation="service stop")

    def start(self) -> None:
        command = self.start_command or self.restart_command
        run_command(command, cwd=self.cwd, operation="service start")


def _database_env(dsn: str) -> Dict[str, str]:
    parsed = urlparse(dsn)
    env = {
        "PGHOST": parsed.hostname or "localhost",
        "PGPORT": str(parsed.port or 5432),
        "PGDATABASE": parsed.path.lstrip("/"),
    }
    if parsed.username:
        env["PGUSER"] = parsed.username
    if parsed.password:
        env["PGPASSWORD"] = parsed.password
    return env


class PgDataRestorer(DataRestorer):
    """Restores a PostgreSQL dump with ``pg_restore`` and probes it with ``psql``."""

    def __init__(self, dsn_env_var: str = "DATABASE_URL", timeout: float = 3600.0):
        self.dsn_env_var = dsn_env_var
        self.timeout = timeout

    def _dsn(self) -> str:
        dsn = os.environ.get(self.dsn_env_var)
        if not dsn:
            raise ConfigurationError(f"{self.dsn_env_var} is not set")
        return dsn

    def is_available(self) -> bool:
        return tool_available("pg_restore") and tool_available("psql")

    def backup(self, directory: str) -> Optional[str]:
        env = _database_env(self._dsn())
        target = Path(directory) / f"{env['PGDATABASE']}.dump"
        logger.info(f"Dumping database {env['PGDATABASE']} to {target}")
        run_command(
            ["pg_dump", "--format=custom", "--file", str(target), env["PGDATABASE"]],
            env=env,
            timeout=self.timeout,
            operation="database backup",
        )
        return str(target)

    def restore(self, ref: str) -> None:
        if not Path(ref).exists():
            raise InfrastructureError(f"Backup file not found: {ref}")

        env = _database_env(self._dsn())
        logger.info(f"Restoring database {env['PGDATABASE']} from {ref}")
        run_command(
            ["pg_restore", "--clean", "--if-exists", "--no-owner", "-d", env["PGDATABASE"], ref],
            env=env,
            timeout=self.timeout,
            operation="database restore",
        )

    def verify(self) -> bool:
        try:
            env = _database_env(self._dsn())
            output = run_command(
                ["psql", "-tAc", "SELECT 1"], env=env, timeout=30, operation="database probe"
            )
        except (InfrastructureError, ConfigurationError) as e:
            logger.error(f"Database verification failed: {e}")
            return False
        return output.strip() == "1"


class GitVersionControl(VersionControl):
    """Reads and resets revisions of a git working copy."""

    def __init__(self, repo_dir: Optional[str] = None):
        self.repo_dir = repo_dir

    def is_available(self) -> bool:
        if not tool_available("git"):
            return False
        try:
            run_command(["git", "status", "--porcelain"], cwd=self.repo_dir, timeout=30)
        except InfrastructureError:
            return False
        return True

    def current_revision(self) -> Optional[str]:
        return run_command(["git", "rev-parse", "HEAD"], cwd=self.repo_dir, timeout=30) or None

    def revert_to(self, ref: str) -> None:
        logger.info(f"Resetting working copy to {ref}")
        run_command(["git", "reset", "--hard", ref], cwd=self.repo_dir, operation="code revert")


class ShellDependencyInstaller(DependencyInstaller):
    """Writes captured manifests back to disk and runs the install command."""

    def __init__(
        self,
        command: Command,
        project_dir: str = ".",
        timeout: float = 1800.0,
        retry: Optional[RetryStrategy] = None,
    ):
        self.command = command
        self.project_dir = project_dir
        self.timeout = timeout
        # Non-zero install exits are retried
        self.retry = retry or RetryStrategy(max_retries=2, base_delay=5.0, max_delay=30.0)

    def is_available(self) -> bool:
        args: List[str] = shlex.split(self.command) if isinstance(self.command, str) else list(self.command)
        return bool(args) and tool_available(args[0])

    def restore(self, manifest: Dict[str, str]) -> None:
        root = Path(self.project_dir)
        for relative_path, content in manifest.items():
            target = root / relative_path
            target.write_text(content, encoding="utf-8")
            logger.info(f"Restored {relative_path} from snapshot")

        self.retry.execute_with_retry(
            run_command,
            self.command,
            cwd=self.project_dir,
            timeout=self.timeout,
            operation="dependency install",
        )
