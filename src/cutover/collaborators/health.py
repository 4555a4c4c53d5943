"""HTTP health probing and whole-system health checks."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

import requests

from cutover.collaborators.base import HealthProbe
from cutover.collaborators.checks import CheckResult, NamedCheck, run_checks
from cutover.utils.errors import InfrastructureError
from cutover.utils.logging import get_logger
from cutover.utils.retry import RetryStrategy

logger = get_logger(__name__)


class HttpHealthProbe(HealthProbe):
    """Probes HTTP endpoints, polling until they answer with an accepted status.

    The poll is bounded by the retry strategy, so a service that never comes
    back yields ``False`` instead of blocking the run forever.
    """

    def __init__(
        self,
        base_url: str,
        accepted_statuses: Optional[Dict[str, Sequence[int]]] = None,
        default_statuses: Sequence[int] = (200,),
        timeout: float = 5.0,
        retry: Optional[RetryStrategy] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the probe.

        Args:
            base_url: Base URL that relative targets are joined to
            accepted_statuses: Per-target accepted status codes
            default_statuses: Status codes accepted for targets without an entry
            timeout: Per-request timeout in seconds
            retry: Poll strategy; a short exponential backoff by default
            session: Requests session, injectable for tests
        """
        self.base_url = base_url.rstrip("/")
        self.accepted_statuses = {k: tuple(v) for k, v in (accepted_statuses or {}).items()}
        self.default_statuses = tuple(default_statuses)
        self.timeout = timeout
        self.retry = retry or RetryStrategy(max_retries=5, base_delay=0.5, max_delay=5.0)
        self.session = session or requests.Session()

    def url_for(self, target: str) -> str:
        if target.startswith(("http://", "https://")):
            return target
        return f"{self.base_url}/{target.lstrip('/')}"

    def _probe_once(self, target: str) -> bool:
        url = self.url_for(target)
        accepted = self.accepted_statuses.get(target, self.default_statuses)
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise InfrastructureError(f"Health probe could not reach {url}", cause=e) from e

        if response.status_code in accepted:
            logger.debug(f"{url} answered {response.status_code}")
            return True
        logger.debug(f"{url} answered {response.status_code}, expected one of {accepted}")
        return False

    def check(self, target: str) -> bool:
        return self.retry.poll_until(lambda: self._probe_once(target), description=self.url_for(target))


@dataclass
class HealthReport:
    """Aggregated result of a health check run."""

    success: bool
    results: List[CheckResult] = field(default_factory=list)

    @property
    def errors(self) -> List[str]:
        return [f"{r.name}: {r.message}" for r in self.results if not r.success]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "results": [r.to_dict() for r in self.results],
            "errors": self.errors,
        }


class HealthChecker:
    """Runs a list of named checks and reports overall system health.

    Non-critical checks are reported but do not affect ``success``.
    """

    def __init__(self, checks: Iterable[NamedCheck]):
        self.checks = list(checks)

    def run_health_checks(self) -> HealthReport:
        logger.info(f"Running {len(self.checks)} health checks")
        results = run_checks(self.checks)
        success = all(r.success for r in results if r.critical)
        if success:
            logger.info("All critical health checks passed")
        else:
            failed = [r.name for r in results if r.critical and not r.success]
            logger.error(f"Health checks failed: {', '.join(failed)}")
        return HealthReport(success=success, results=results)
