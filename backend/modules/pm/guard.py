"""
Generation Guard — at most one work item per due occurrence.

The guard owns the only shared mutation in a scheduler pass: a
compare-and-set of last_generated_at against the value read when the pass
loaded it. Whichever run (or worker) lands the CAS first owns the
occurrence; everyone else backs off.

The CAS and the work item creation are one unit of work in the store:

    BEGIN
      UPDATE ... SET last_generated_at = :run_at WHERE last_generated_at = :read
      emit(session)          -- work item written through the same session
    COMMIT                   -- or ROLLBACK if emit raised

A failed emission, or a process that dies mid-way, leaves last_generated_at
where it was and the next pass retries.
"""

import logging
from datetime import datetime
from typing import Optional

from core.clock import as_utc
from core.interfaces.pm_store import EmitCallback, PmTaskStore
from core.interfaces.records import AssignmentRecord, ConditionRuleRecord
from modules.pm.errors import ConcurrencyLostError
from modules.pm.types import Verdict

log = logging.getLogger("pm.guard")


class GenerationGuard:

    def __init__(self, store: PmTaskStore):
        self.store = store

    def already_serviced(self, record, verdict: Verdict) -> bool:
        """True when the verdict's occurrence was covered by the last generation.

        record is an AssignmentRecord or a ConditionRuleRecord.
        """
        last = as_utc(record.last_generated_at)
        occurrence = as_utc(verdict.occurrence_start)
        if last is None or occurrence is None:
            return False
        return last >= occurrence

    def claim(
        self,
        assignment: AssignmentRecord,
        run_at: datetime,
        next_due: Optional[datetime],
        emit: EmitCallback,
    ) -> int:
        """CAS last_generated_at to run_at and emit. Raises ConcurrencyLostError on a lost race."""
        work_item_id = self.store.generate_work_item(
            assignment.id,
            assignment.last_generated_at,
            run_at,
            next_due,
            emit,
        )
        if work_item_id is None:
            raise ConcurrencyLostError(
                f"Assignment {assignment.id} was advanced by a concurrent run",
                assignment_id=assignment.id,
            )
        log.debug(f"Claimed assignment {assignment.id} at {run_at.isoformat()}")
        return work_item_id

    def claim_condition(self, rule: ConditionRuleRecord, run_at: datetime, emit: EmitCallback) -> int:
        work_item_id = self.store.generate_condition_work_item(rule.id, rule.last_generated_at, run_at, emit)
        if work_item_id is None:
            raise ConcurrencyLostError(f"Condition rule {rule.id} was advanced by a concurrent run")
        log.debug(f"Claimed condition rule {rule.id} at {run_at.isoformat()}")
        return work_item_id
