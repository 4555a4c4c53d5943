"""Named checks shared by the preflight checker and the health checker."""

import os
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from cutover.collaborators.base import HealthProbe
from cutover.collaborators.shell import tool_available
from cutover.utils.errors import ValidationError
from cutover.utils.logging import get_logger

logger = get_logger(__name__)

# A check returns True when it passes. Raising explains a failure.
CheckFunction = Callable[[], bool]


@dataclass
class NamedCheck:
    """A single check with a criticality flag."""

    name: str
    fn: CheckFunction
    critical: bool = True


@dataclass
class CheckResult:
    """Outcome of one check."""

    name: str
    success: bool
    critical: bool
    message: str = ""
    duration_ms: float = 0.0
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "success": self.success,
            "critical": self.critical,
            "message": self.message,
            "durationMs": round(self.duration_ms, 3),
        }


def run_check(check: NamedCheck, clock: Callable[[], float] = time.monotonic) -> CheckResult:
    """Run one check. Failures, including raised exceptions, are returned rather than raised."""
    started = clock()
    try:
        passed = bool(check.fn())
        message = "passed" if passed else "check reported failure"
    except Exception as e:
        logger.debug(f"Check '{check.name}' raised {type(e).__name__}: {e}")
        passed = False
        message = str(e) or type(e).__name__
    duration_ms = (clock() - started) * 1000

    if passed:
        logger.debug(f"Check passed: {check.name} ({duration_ms:.0f}ms)")
    elif check.critical:
        logger.error(f"Critical check failed: {check.name}: {message}")
    else:
        logger.warning(f"Check failed: {check.name}: {message}")

    return CheckResult(
        name=check.name,
        success=passed,
        critical=check.critical,
        message=message,
        duration_ms=duration_ms,
    )


def run_checks(checks: Iterable[NamedCheck]) -> List[CheckResult]:
    return [run_check(check) for check in checks]


def env_vars_present(names: Iterable[str], environ: Optional[Dict[str, str]] = None) -> CheckFunction:
    """Check that every named environment variable is set and non-empty."""
    names = list(names)

    def check() -> bool:
        source = os.environ if environ is None else environ
        missing = [name for name in names if not source.get(name)]
        if missing:
            raise ValidationError(f"Missing environment variables: {', '.join(missing)}")
        return True

    return check


def tools_on_path(tools: Iterable[str]) -> CheckFunction:
    """Check that every named executable can be found on PATH."""
    tools = list(tools)

    def check() -> bool:
        missing = [tool for tool in tools if not tool_available(tool)]
        if missing:
            raise ValidationError(f"Required tools not found on PATH: {', '.join(missing)}")
        return True

    return check


def directory_writable(path: str) -> CheckFunction:
    """Check that a directory exists (creating it if needed) and accepts new files."""

    def check() -> bool:
        directory = Path(path)
        directory.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=directory, prefix=".write-test-"):
            pass
        return True

    return check


def probe_target(probe: HealthProbe, target: str) -> CheckFunction:
    """Check a target through a health probe."""

    def check() -> bool:
        return probe.check(target)

    return check
