# core/interfaces/pm_store.py
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Optional, TYPE_CHECKING

from core.interfaces.records import ConditionRuleRecord, PmTaskRecord

if TYPE_CHECKING:
    from modules.pm.types import RunReport

# Called with the store's open session (or None) once the CAS has matched.
EmitCallback = Callable[[object], int]


class PmTaskStore(ABC):
    """What the PM engine needs from the rule store."""

    @abstractmethod
    def load_active_pm_tasks(self, tenant_id: Optional[int] = None) -> list[PmTaskRecord]:
        """Active tasks with assignments populated; all tenants when tenant_id is None."""
        ...

    @abstractmethod
    def load_active_condition_rules(self, tenant_id: Optional[int] = None) -> list[ConditionRuleRecord]:
        ...

    @abstractmethod
    def update_assignment_state(
        self,
        assignment_id: int,
        expected_last_generated_at: Optional[datetime],
        new_last_generated_at: Optional[datetime],
        next_due: Optional[datetime],
    ) -> bool:
        """Compare-and-set. True only if the stored last_generated_at matched."""
        ...

    @abstractmethod
    def generate_work_item(
        self,
        assignment_id: int,
        expected_last_generated_at: Optional[datetime],
        new_last_generated_at: datetime,
        next_due: Optional[datetime],
        emit: EmitCallback,
    ) -> Optional[int]:
        """Compare-and-set plus emission as one unit of work.

        emit runs only after the CAS matched. If emit raises, or the process
        dies before the unit commits, the stored state is left as it was and
        the exception propagates. Returns the work item id, or None when the
        CAS lost.
        """
        ...

    @abstractmethod
    def generate_condition_work_item(
        self,
        rule_id: int,
        expected_last_generated_at: Optional[datetime],
        new_last_generated_at: datetime,
        emit: EmitCallback,
    ) -> Optional[int]:
        """generate_work_item for a condition rule's last_generated_at."""
        ...

    @abstractmethod
    def record_next_due(self, assignment_id: int, next_due: Optional[datetime]) -> None:
        """Unconditional next_due refresh for not-due assignments."""
        ...

    @abstractmethod
    def record_run(self, report: "RunReport") -> None: ...
