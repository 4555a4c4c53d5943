"""Pre-deployment checks run before anything is mutated."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from cutover.collaborators.checks import CheckResult, NamedCheck, run_checks
from cutover.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class PreflightReport:
    """Summary of a preflight run."""

    success: bool
    critical_failure_count: int
    warning_count: int
    results: List[CheckResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "criticalFailureCount": self.critical_failure_count,
            "warningCount": self.warning_count,
            "results": [r.to_dict() for r in self.results],
        }


class PreflightChecker:
    """Runs every registered check and counts critical failures and warnings.

    A failing non-critical check is a warning. The run succeeds when no
    critical check failed.
    """

    def __init__(self, checks: Iterable[NamedCheck] = ()):
        self.checks: List[NamedCheck] = list(checks)

    def add_check(self, name: str, fn, critical: bool = True) -> "PreflightChecker":
        self.checks.append(NamedCheck(name=name, fn=fn, critical=critical))
        return self

    def run(self) -> PreflightReport:
        logger.info(f"Running {len(self.checks)} pre-deployment checks")
        results = run_checks(self.checks)

        critical_failures = sum(1 for r in results if r.critical and not r.success)
        warnings = sum(1 for r in results if not r.critical and not r.success)

        report = PreflightReport(
            success=critical_failures == 0,
            critical_failure_count=critical_failures,
            warning_count=warnings,
            results=results,
        )
        logger.info(
            f"Pre-deployment checks finished: {len(results) - critical_failures - warnings} passed, "
            f"{critical_failures} critical failures, {warnings} warnings"
        )
        return report
