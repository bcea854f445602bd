"""
Engine-side value types: the trigger union, evaluator verdicts, and the run report.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union


# ============== Triggers ==============

@dataclass(frozen=True)
class CalendarTrigger:
    """Cron expression or textual cadence ("daily", "every 2 weeks")."""
    expression: str
    source: str = "assignment"  # "assignment" | "task"


@dataclass(frozen=True)
class MeterTrigger:
    metric: str
    threshold: Optional[float]
    lookback_days: int
    source: str = "assignment"


@dataclass(frozen=True)
class ConditionTrigger:
    """Latest sensor reading compared against a threshold."""
    metric: str
    operator: str
    threshold: float
    source: str = "condition"


Trigger = Union[CalendarTrigger, MeterTrigger, ConditionTrigger]


# ============== Verdicts ==============

@dataclass
class Verdict:
    """Normalized Trigger Resolver result for one assignment."""
    due: bool
    next_due: Optional[datetime]
    reason: str
    trigger: Optional[Trigger] = None
    # Instant identifying the due occurrence: the occurrence itself for
    # calendar triggers, the window start for meter triggers, the reading
    # time for condition triggers.
    occurrence_start: Optional[datetime] = None
    usage: Optional[float] = None
    error: Optional[Exception] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


# ============== Run report ==============

class OutcomeStatus(str, Enum):
    NOT_DUE = "not_due"
    GENERATED = "generated"
    ALREADY_SERVICED = "already_serviced"
    CONCURRENCY_LOST = "concurrency_lost"
    ERROR = "error"


@dataclass
class RunError:
    task_id: Optional[int]
    assignment_id: Optional[int]
    tenant_id: Optional[int]
    kind: str
    message: str
    rule_id: Optional[int] = None


@dataclass
class AssignmentOutcome:
    """Result for one assignment, or for one condition rule (rule_id set)."""
    task_id: Optional[int]
    assignment_id: Optional[int]
    tenant_id: int
    status: OutcomeStatus
    reason: str
    rule_id: Optional[int] = None
    work_item_id: Optional[int] = None
    next_due: Optional[datetime] = None
    error: Optional[RunError] = None


@dataclass
class RunReport:
    """Result of one scheduler pass."""
    run_at: datetime
    tenant_id: Optional[int] = None
    evaluated: int = 0
    generated: int = 0
    skipped: int = 0
    errors: List[RunError] = field(default_factory=list)
    outcomes: List[AssignmentOutcome] = field(default_factory=list)
    duration_ms: float = 0

    def add(self, outcome: AssignmentOutcome) -> None:
        """Fold one assignment outcome into the counters."""
        self.outcomes.append(outcome)
        self.evaluated += 1
        if outcome.status == OutcomeStatus.GENERATED:
            self.generated += 1
        elif outcome.status == OutcomeStatus.ERROR:
            if outcome.error is not None:
                self.errors.append(outcome.error)
        else:
            self.skipped += 1

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        data = asdict(self)
        data["run_at"] = self.run_at.isoformat()
        for outcome in data["outcomes"]:
            outcome["status"] = outcome["status"].value
            if outcome["next_due"] is not None:
                outcome["next_due"] = outcome["next_due"].isoformat()
        return data
