"""Best-effort reverse-order compensation of a failed deployment."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from cutover.observer.event_log import EventLog
from cutover.orchestrator.outcome import Outcome
from cutover.orchestrator.steps import DeploymentPlan
from cutover.utils.errors import DeploymentError
from cutover.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CompensationResult:
    """Which compensations ran cleanly and which failed (name -> error)."""

    compensated: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    def is_clean(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {"compensated": list(self.compensated), "failed": dict(self.failed)}


class CompensationPass:
    """Runs the compensation of every completed phase, newest first.

    Only phases that completed in this run and declare a compensation are
    touched. A failing compensation is logged as a warning and the remaining
    ones still run. The pass never raises.
    """

    def __init__(self, event_log: EventLog):
        self.event_log = event_log
        self.logger = get_logger(__name__)

    def run(self, plan: DeploymentPlan, completed_phases: Sequence[str]) -> CompensationResult:
        result = CompensationResult()
        targets = [
            name for name in reversed(completed_phases)
            if plan.get(name) is not None and plan.get(name).compensation is not None
        ]

        if not targets:
            self.event_log.info("COMPENSATION", "No completed phase declares a compensation")
            return result

        self.event_log.warning(
            "COMPENSATION",
            f"🔄 Compensating {len(targets)} completed phases: {', '.join(targets)}",
        )

        for name in targets:
            compensation = plan.get(name).compensation
            try:
                outcome = compensation()
            except DeploymentError as e:
                self._record_failure(result, name, e.message)
                continue
            except Exception as e:
                # Recovery is already degraded; surface for humans instead of raising
                self.logger.exception(f"Unexpected error compensating {name}")
                self._record_failure(result, name, f"{type(e).__name__}: {e}")
                continue

            if isinstance(outcome, Outcome) and not outcome.success:
                self._record_failure(result, name, outcome.message or "compensation failed")
                continue

            result.compensated.append(name)
            self.event_log.info("COMPENSATION", f"Compensated {name}")

        if result.failed:
            self.event_log.warning(
                "COMPENSATION",
                f"Compensation finished with {len(result.failed)} failures; manual intervention may be required",
                {"failed": result.failed},
            )
        else:
            self.event_log.info("COMPENSATION", "Compensation finished cleanly")
        return result

    def _record_failure(self, result: CompensationResult, name: str, message: str) -> None:
        result.failed[name] = message
        self.event_log.warning("COMPENSATION", f"Compensation of {name} failed: {message}")
