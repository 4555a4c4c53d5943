"""Phase/step definitions and the ordered deployment plan."""

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from cutover.orchestrator.outcome import Outcome

# An action returns None or an Outcome, or raises a DeploymentError
Action = Callable[[], Optional[Outcome]]
# A health check may also answer with a plain bool
HealthCheck = Callable[[], Union[bool, Outcome, None]]


@dataclass
class Step:
    """A single named unit of work in a deployment plan or recovery sequence."""

    name: str
    description: str = ""
    critical: bool = True
    action: Optional[Action] = None
    compensation: Optional[Action] = None
    health_check: Optional[HealthCheck] = None
    downtime_window: bool = False
    enabled: bool = True


# Deployment plans speak of phases; the rollback pipeline of steps
Phase = Step


class DeploymentPlan:
    """An ordered sequence of phases. Execution order equals declared order."""

    def __init__(self, phases: Iterable[Phase]):
        """Build and validate a plan.

        Args:
            phases: Phases in execution order

        Raises:
            ValueError: If phase names repeat or more than one phase is a downtime window
        """
        self._phases: Tuple[Phase, ...] = tuple(phases)

        seen = set()
        for phase in self._phases:
            if phase.name in seen:
                raise ValueError(f"Duplicate phase name in plan: {phase.name}")
            seen.add(phase.name)

        windows = [p.name for p in self._phases if p.downtime_window]
        if len(windows) > 1:
            raise ValueError(f"A plan may have at most one downtime window phase, got: {', '.join(windows)}")

        self._by_name: Dict[str, Phase] = {p.name: p for p in self._phases}

    @property
    def phases(self) -> Tuple[Phase, ...]:
        return self._phases

    @property
    def names(self) -> List[str]:
        return [p.name for p in self._phases]

    @property
    def downtime_phase(self) -> Optional[Phase]:
        for phase in self._phases:
            if phase.downtime_window:
                return phase
        return None

    def get(self, name: str) -> Optional[Phase]:
        return self._by_name.get(name)

    def __iter__(self) -> Iterator[Phase]:
        return iter(self._phases)

    def __len__(self) -> int:
        return len(self._phases)
