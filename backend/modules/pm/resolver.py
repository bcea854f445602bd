"""
Trigger Resolver.

Maps one assignment onto exactly one trigger family and evaluates it:

    1. trigger.type == "meter"                       -> MeterTrigger
    2. usage_metric + non-zero usage_target, lookback -> MeterTrigger (legacy fields)
    3. assignment interval                            -> CalendarTrigger
    4. task rule: calendar cron / meter name          -> task-level trigger
    5. nothing                                        -> ConfigurationError

An explicit trigger.type == "time" skips 2 and the meter half of 4: it
resolves to a calendar source or fails with ConfigurationError.

resolve() never raises for a single assignment: any failure comes back as a
not-due Verdict carrying the error.
"""

import logging
from datetime import datetime
from typing import Optional

from core.base import RuleKind, TriggerType
from core.interfaces.records import AssignmentRecord, PmTaskRecord
from modules.pm.errors import ConfigurationError, PmEngineError
from modules.pm.recurrence import CalendarEvaluator
from modules.pm.types import CalendarTrigger, MeterTrigger, Trigger, Verdict
from modules.pm.usage import UsageAggregator, UsageEvaluator, usage_window

log = logging.getLogger("pm.resolver")


def _normalize(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip().lower()
    return value or None


def select_trigger(task: PmTaskRecord, assignment: AssignmentRecord, default_lookback_days: int = 30) -> Trigger:
    """Pick the single trigger that governs an assignment."""
    lookback = assignment.usage_lookback_days
    if lookback is None:
        lookback = default_lookback_days

    trigger_type = _normalize(assignment.trigger.type) if assignment.trigger else None
    if trigger_type not in (None, TriggerType.TIME.value, TriggerType.METER.value):
        raise ConfigurationError(f"Unknown trigger type {assignment.trigger.type!r}")
    time_only = trigger_type == TriggerType.TIME.value

    if trigger_type == TriggerType.METER.value:
        threshold = assignment.trigger.meter_threshold
        if threshold is None:
            threshold = assignment.usage_target
        return MeterTrigger(metric=assignment.usage_metric, threshold=threshold, lookback_days=lookback)

    if not time_only and assignment.usage_metric and assignment.usage_target and lookback > 0:
        return MeterTrigger(
            metric=assignment.usage_metric,
            threshold=assignment.usage_target,
            lookback_days=lookback,
        )

    if assignment.interval and assignment.interval.strip():
        return CalendarTrigger(expression=assignment.interval.strip())

    rule = task.rule
    rule_kind = _normalize(rule.kind) if rule else None
    if rule_kind == RuleKind.CALENDAR.value and rule.cron:
        return CalendarTrigger(expression=rule.cron.strip(), source="task")
    if rule_kind not in (None, RuleKind.CALENDAR.value, RuleKind.METER.value):
        raise ConfigurationError(f"Unknown task rule kind {rule.kind!r}")
    if time_only:
        raise ConfigurationError("Time trigger has no calendar recurrence on assignment or task")
    if rule_kind == RuleKind.METER.value and rule.meter_name:
        return MeterTrigger(
            metric=rule.meter_name,
            threshold=rule.threshold,
            lookback_days=default_lookback_days,
            source="task",
        )

    raise ConfigurationError("No recurrence configured on assignment or task")


class TriggerResolver:
    """Dispatches assignments to the calendar or usage evaluator."""

    def __init__(
        self,
        aggregator: UsageAggregator,
        calendar: Optional[CalendarEvaluator] = None,
        usage: Optional[UsageEvaluator] = None,
        default_lookback_days: int = 30,
    ):
        self.aggregator = aggregator
        self.calendar = calendar or CalendarEvaluator()
        self.usage = usage or UsageEvaluator()
        self.default_lookback_days = default_lookback_days

    def resolve(self, task: PmTaskRecord, assignment: AssignmentRecord, now: datetime) -> Verdict:
        try:
            trigger = select_trigger(task, assignment, self.default_lookback_days)
            if isinstance(trigger, CalendarTrigger):
                return self._resolve_calendar(trigger, assignment, now)
            if isinstance(trigger, MeterTrigger):
                return self._resolve_meter(trigger, task, assignment, now)
            raise ConfigurationError(f"Unsupported trigger {trigger!r}")
        except PmEngineError as e:
            e.task_id, e.assignment_id = task.id, assignment.id
            return Verdict(due=False, next_due=assignment.next_due, reason=f"skipped: {e.message}", error=e)
        except Exception as e:
            log.error(f"Trigger resolution failed for assignment {assignment.id} of task {task.id}: {e}", exc_info=True)
            return Verdict(due=False, next_due=assignment.next_due, reason=f"skipped: {e}", error=e)

    def _resolve_calendar(self, trigger: CalendarTrigger, assignment: AssignmentRecord, now: datetime) -> Verdict:
        result = self.calendar.evaluate(
            trigger.expression,
            assignment.last_generated_at,
            now,
            next_due=assignment.next_due,
        )
        return Verdict(
            due=result.due,
            next_due=result.next_occurrence,
            reason=f"calendar({trigger.source}): {trigger.expression}",
            trigger=trigger,
            occurrence_start=result.due_occurrence,
        )

    def _resolve_meter(
        self,
        trigger: MeterTrigger,
        task: PmTaskRecord,
        assignment: AssignmentRecord,
        now: datetime,
    ) -> Verdict:
        # Validate the target before spending a telemetry query on it.
        if trigger.threshold is None or trigger.threshold <= 0:
            raise ConfigurationError(f"Usage target must be positive, got {trigger.threshold!r}")

        window_start, _ = usage_window(now, trigger.lookback_days)
        total = self.aggregator.aggregate(
            assignment.asset_id,
            task.tenant_id,
            trigger.metric,
            trigger.lookback_days,
            now,
        )
        due = self.usage.evaluate(total, trigger.threshold)
        comparison = ">=" if due else "<"
        return Verdict(
            due=due,
            next_due=None,
            reason=f"meter({trigger.source}): {trigger.metric} {total:g} {comparison} {trigger.threshold:g}",
            trigger=trigger,
            occurrence_start=window_start if due else None,
            usage=total,
        )

    def next_due_after_generation(self, verdict: Verdict, generated_at: datetime) -> Optional[datetime]:
        """next_due to store alongside a successful generation."""
        if isinstance(verdict.trigger, CalendarTrigger):
            return self.calendar.next_after_generation(verdict.trigger.expression, generated_at)
        return None
