"""
PM Engine - Preventive maintenance scheduler.

One pass:
1. Load active PM tasks and condition rules (optionally for one tenant)
2. Resolve every assignment to a calendar or meter verdict, and every
   condition rule to a condition verdict
3. For due ones, claim the occurrence and emit the work item in one unit of
   work through the generation guard
4. Persist the run report and publish pm.run_completed

Each assignment and each condition rule is a bulkhead: whatever goes wrong
with one is recorded in the report and the pass moves on to the next.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from functools import partial
from typing import Optional

from core.clock import as_utc, utcnow
from core.config import settings
from core.event_bus import get_event_bus
from core.events import PM_RUN_COMPLETED, PM_WORK_ITEM_GENERATED
from core.interfaces.asset_resolver import AssetResolver
from core.interfaces.event_bus import Event, EventBus
from core.interfaces.pm_store import PmTaskStore
from core.interfaces.records import AssignmentRecord, ConditionRuleRecord, PmTaskRecord
from core.interfaces.sensor_readings import SensorReadingSource
from core.interfaces.usage_source import UsageSource
from core.interfaces.work_items import WorkItemEmitter
from modules.pm.condition import ConditionEvaluator
from modules.pm.emitter import PmWorkItemEmitter
from modules.pm.errors import ConcurrencyLostError, DataUnavailableError, EmissionError, PmEngineError
from modules.pm.guard import GenerationGuard
from modules.pm.resolver import TriggerResolver
from modules.pm.types import AssignmentOutcome, CalendarTrigger, OutcomeStatus, RunError, RunReport, Verdict
from modules.pm.usage import UsageAggregator

log = logging.getLogger("pm.engine")

MODULE_SOURCE = "pm"


def _run_error(task: Optional[PmTaskRecord], assignment: Optional[AssignmentRecord], error: Exception,
               rule: Optional[ConditionRuleRecord] = None) -> RunError:
    message = error.message if isinstance(error, PmEngineError) else str(error)
    return RunError(
        task_id=task.id if task else None,
        assignment_id=assignment.id if assignment else None,
        tenant_id=task.tenant_id if task else rule.tenant_id,
        kind=type(error).__name__,
        message=message,
        rule_id=rule.id if rule else None,
    )


class PmScheduler:
    """
    Preventive maintenance scheduler.

    Collaborators are injected; the engine holds no state between passes
    beyond what the store persists. sensor_readings is only needed when
    condition rules exist.
    """

    def __init__(
        self,
        store: PmTaskStore,
        usage_source: UsageSource,
        work_items: WorkItemEmitter,
        assets: Optional[AssetResolver] = None,
        event_bus: Optional[EventBus] = None,
        max_workers: Optional[int] = None,
        default_lookback_days: Optional[int] = None,
        sensor_readings: Optional[SensorReadingSource] = None,
    ):
        self.store = store
        self.bus = event_bus
        self.max_workers = max_workers if max_workers is not None else settings.pm_max_workers
        lookback = default_lookback_days if default_lookback_days is not None else settings.pm_default_lookback_days

        self.resolver = TriggerResolver(UsageAggregator(usage_source), default_lookback_days=lookback)
        self.conditions = ConditionEvaluator(sensor_readings)
        self.guard = GenerationGuard(store)
        self.emitter = PmWorkItemEmitter(work_items, assets)

    # ------------------------------------------------------------------
    # Pass
    # ------------------------------------------------------------------

    def run(self, tenant_id: Optional[int] = None, now: Optional[datetime] = None) -> RunReport:
        """Run one scheduler pass. Raises DataUnavailableError if tasks can't be loaded."""
        run_at = as_utc(now) if now is not None else utcnow()
        started = time.monotonic()
        report = RunReport(run_at=run_at, tenant_id=tenant_id)

        tasks = self._load("PM tasks", self.store.load_active_pm_tasks, tenant_id)
        rules = self._load("condition rules", self.store.load_active_condition_rules, tenant_id)

        work = [
            partial(self.process_assignment, task, assignment, run_at)
            for task in tasks
            if task.active
            for assignment in task.assignments
        ]
        work.extend(partial(self.process_condition, rule, run_at) for rule in rules if rule.active)
        log.info(
            f"PM pass at {run_at.isoformat()}: {len(tasks)} tasks, "
            f"{len(rules)} condition rules, {len(work)} evaluations"
        )

        if self.max_workers > 1 and len(work) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                outcomes = list(pool.map(lambda unit: unit(), work))
        else:
            outcomes = [unit() for unit in work]

        for outcome in outcomes:
            report.add(outcome)
        report.duration_ms = round((time.monotonic() - started) * 1000, 2)

        log.info(
            f"PM pass complete: evaluated={report.evaluated} generated={report.generated} "
            f"skipped={report.skipped} errors={len(report.errors)} ({report.duration_ms}ms)"
        )
        self._record(report)
        self._publish(PM_RUN_COMPLETED, {
            "tenant_id": tenant_id,
            "evaluated": report.evaluated,
            "generated": report.generated,
            "skipped": report.skipped,
            "errors": len(report.errors),
        })
        return report

    def _load(self, what: str, loader, tenant_id: Optional[int]) -> list:
        try:
            return list(loader(tenant_id))
        except DataUnavailableError:
            log.error(f"PM pass aborted: {what} for tenant {tenant_id} unavailable", exc_info=True)
            raise
        except Exception as e:
            log.error(f"PM pass aborted: failed to load {what} for tenant {tenant_id}: {e}", exc_info=True)
            raise DataUnavailableError(f"Failed to load {what}: {e}") from e

    # ------------------------------------------------------------------
    # Per assignment
    # ------------------------------------------------------------------

    def process_assignment(self, task: PmTaskRecord, assignment: AssignmentRecord, run_at: datetime) -> AssignmentOutcome:
        """Evaluate and, if due, generate for one assignment. Never raises."""
        try:
            return self._process(task, assignment, run_at)
        except Exception as e:
            log.error(f"Assignment {assignment.id} of task {task.id} failed: {e}", exc_info=True)
            return self._outcome(task, assignment, OutcomeStatus.ERROR, f"error: {e}", error=_run_error(task, assignment, e))

    def _process(self, task: PmTaskRecord, assignment: AssignmentRecord, run_at: datetime) -> AssignmentOutcome:
        verdict = self.resolver.resolve(task, assignment, run_at)

        if verdict.failed:
            log.warning(f"Skipping assignment {assignment.id} of task {task.id}: {verdict.reason}")
            return self._outcome(
                task, assignment, OutcomeStatus.ERROR, verdict.reason,
                error=_run_error(task, assignment, verdict.error),
            )

        if not verdict.due:
            self._refresh_next_due(assignment, verdict)
            return self._outcome(task, assignment, OutcomeStatus.NOT_DUE, verdict.reason, next_due=verdict.next_due)

        if self.guard.already_serviced(assignment, verdict):
            return self._outcome(task, assignment, OutcomeStatus.ALREADY_SERVICED, verdict.reason)

        next_due = self.resolver.next_due_after_generation(verdict, run_at)
        item = self.emitter.build(task, assignment, verdict, run_at)
        try:
            work_item_id = self.guard.claim(assignment, run_at, next_due, partial(self.emitter.emit, item))
        except ConcurrencyLostError as e:
            log.debug(f"Task {task.id}: {e.message}")
            return self._outcome(task, assignment, OutcomeStatus.CONCURRENCY_LOST, e.message)
        except EmissionError as e:
            log.error(f"Task {task.id} assignment {assignment.id}: {e.message}")
            return self._outcome(
                task, assignment, OutcomeStatus.ERROR, verdict.reason,
                error=_run_error(task, assignment, e),
            )

        self._publish(PM_WORK_ITEM_GENERATED, {
            "task_id": task.id,
            "assignment_id": assignment.id,
            "tenant_id": task.tenant_id,
            "work_item_id": work_item_id,
            "reason": verdict.reason,
        })
        return self._outcome(
            task, assignment, OutcomeStatus.GENERATED, verdict.reason,
            work_item_id=work_item_id, next_due=next_due,
        )

    def _refresh_next_due(self, assignment: AssignmentRecord, verdict: Verdict) -> None:
        if not isinstance(verdict.trigger, CalendarTrigger) or verdict.next_due is None:
            return
        if as_utc(assignment.next_due) == verdict.next_due:
            return
        try:
            self.store.record_next_due(assignment.id, verdict.next_due)
        except Exception as e:
            log.warning(f"Could not refresh next_due for assignment {assignment.id}: {e}")

    @staticmethod
    def _outcome(
        task: PmTaskRecord,
        assignment: AssignmentRecord,
        status: OutcomeStatus,
        reason: str,
        **kwargs,
    ) -> AssignmentOutcome:
        return AssignmentOutcome(
            task_id=task.id,
            assignment_id=assignment.id,
            tenant_id=task.tenant_id,
            status=status,
            reason=reason,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Per condition rule
    # ------------------------------------------------------------------

    def process_condition(self, rule: ConditionRuleRecord, run_at: datetime) -> AssignmentOutcome:
        """Evaluate and, if matched, generate for one condition rule. Never raises."""
        try:
            return self._process_condition(rule, run_at)
        except Exception as e:
            log.error(f"Condition rule {rule.id} failed: {e}", exc_info=True)
            return self._rule_outcome(rule, OutcomeStatus.ERROR, f"error: {e}", error=_run_error(None, None, e, rule))

    def _process_condition(self, rule: ConditionRuleRecord, run_at: datetime) -> AssignmentOutcome:
        verdict = self.conditions.evaluate(rule, run_at)

        if verdict.failed:
            log.warning(f"Skipping condition rule {rule.id}: {verdict.reason}")
            return self._rule_outcome(
                rule, OutcomeStatus.ERROR, verdict.reason,
                error=_run_error(None, None, verdict.error, rule),
            )
        if not verdict.due:
            return self._rule_outcome(rule, OutcomeStatus.NOT_DUE, verdict.reason)
        if self.guard.already_serviced(rule, verdict):
            return self._rule_outcome(rule, OutcomeStatus.ALREADY_SERVICED, verdict.reason)

        item = self.emitter.build_condition(rule, verdict, run_at)
        try:
            work_item_id = self.guard.claim_condition(rule, run_at, partial(self.emitter.emit, item))
        except ConcurrencyLostError as e:
            log.debug(e.message)
            return self._rule_outcome(rule, OutcomeStatus.CONCURRENCY_LOST, e.message)
        except EmissionError as e:
            log.error(f"Condition rule {rule.id}: {e.message}")
            return self._rule_outcome(
                rule, OutcomeStatus.ERROR, verdict.reason,
                error=_run_error(None, None, e, rule),
            )

        self._publish(PM_WORK_ITEM_GENERATED, {
            "rule_id": rule.id,
            "tenant_id": rule.tenant_id,
            "work_item_id": work_item_id,
            "reason": verdict.reason,
        })
        return self._rule_outcome(rule, OutcomeStatus.GENERATED, verdict.reason, work_item_id=work_item_id)

    @staticmethod
    def _rule_outcome(rule: ConditionRuleRecord, status: OutcomeStatus, reason: str, **kwargs) -> AssignmentOutcome:
        return AssignmentOutcome(
            task_id=None,
            assignment_id=None,
            tenant_id=rule.tenant_id,
            status=status,
            reason=reason,
            rule_id=rule.id,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Side channels
    # ------------------------------------------------------------------

    def _record(self, report: RunReport) -> None:
        try:
            self.store.record_run(report)
        except Exception as e:
            log.error(f"Failed to record PM run: {e}", exc_info=True)

    def _publish(self, event_type: str, data: dict) -> None:
        if self.bus is None:
            return
        self.bus.publish(Event(event_type=event_type, source_module=MODULE_SOURCE, data=data))


def build_scheduler(registry, bus: Optional[EventBus] = None, **kwargs) -> PmScheduler:
    """Wire a PmScheduler from the providers registered by the collaborator modules."""
    providers = registry.providers
    return PmScheduler(
        store=registry.require_provider("PmTaskStore"),
        usage_source=registry.require_provider("UsageSource"),
        work_items=registry.require_provider("WorkItemEmitter"),
        assets=registry.get_provider("AssetResolver"),
        sensor_readings=providers.get("SensorReadingSource"),
        event_bus=bus if bus is not None else (providers.get("EventBus") or get_event_bus()),
        **kwargs,
    )


def run_pm_scheduler(tenant_id: Optional[int] = None, now: Optional[datetime] = None, registry=None) -> RunReport:
    """Convenience function to run one pass with the application's providers."""
    if registry is None:
        from core.app import build_registry
        registry = build_registry()
    return build_scheduler(registry).run(tenant_id=tenant_id, now=now)
