"""
Condition Evaluator.

A condition rule fires when the asset's most recent reading for a metric,
taken at or before the evaluation instant, satisfies `value <op> threshold`.
The reading's timestamp is the occurrence, so one reading yields at most one
work item however many passes see it.
"""

import logging
import operator
from datetime import datetime
from typing import Optional

from core.clock import as_utc
from core.interfaces.records import ConditionRuleRecord
from core.interfaces.sensor_readings import SensorReadingSource
from modules.pm.errors import ConfigurationError, DataUnavailableError, PmEngineError
from modules.pm.types import ConditionTrigger, Verdict

log = logging.getLogger("pm.condition")

OPERATORS = {
    ">": operator.gt,
    "<": operator.lt,
    ">=": operator.ge,
    "<=": operator.le,
    "==": operator.eq,
}


def compare(value: float, op: str, threshold: float) -> bool:
    """Apply a rule operator. Unknown operators are configuration errors."""
    fn = OPERATORS.get((op or "").strip())
    if fn is None:
        raise ConfigurationError(f"Unknown condition operator {op!r}")
    return fn(value, threshold)


class ConditionEvaluator:

    def __init__(self, readings: Optional[SensorReadingSource]):
        self.readings = readings

    def evaluate(self, rule: ConditionRuleRecord, now: datetime) -> Verdict:
        """Verdict for one rule. Never raises; failures come back on the verdict."""
        try:
            return self._evaluate(rule, as_utc(now))
        except PmEngineError as e:
            return Verdict(due=False, next_due=None, reason=f"skipped: {e.message}", error=e)
        except Exception as e:
            log.error(f"Condition rule {rule.id} evaluation failed: {e}", exc_info=True)
            return Verdict(due=False, next_due=None, reason=f"skipped: {e}", error=e)

    def _evaluate(self, rule: ConditionRuleRecord, now: datetime) -> Verdict:
        if not rule.metric:
            raise ConfigurationError("Condition rule has no metric")
        if rule.threshold is None:
            raise ConfigurationError("Condition rule has no threshold")
        op = (rule.operator or "").strip()
        if op not in OPERATORS:
            raise ConfigurationError(f"Unknown condition operator {rule.operator!r}")
        if self.readings is None:
            raise DataUnavailableError("No sensor reading source registered")

        trigger = ConditionTrigger(metric=rule.metric, operator=op, threshold=rule.threshold)
        try:
            reading = self.readings.latest_reading(rule.asset_id, rule.tenant_id, rule.metric, now)
        except Exception as e:
            raise DataUnavailableError(f"Readings for asset {rule.asset_id} unavailable: {e}") from e

        if reading is None:
            return Verdict(
                due=False,
                next_due=None,
                reason=f"condition: no {rule.metric} reading for asset {rule.asset_id}",
                trigger=trigger,
            )

        due = compare(reading.value, op, rule.threshold)
        log.debug(f"Rule {rule.id}: {rule.metric} {reading.value:g} {op} {rule.threshold:g} -> {due}")
        verdict = "matches" if due else "does not match"
        return Verdict(
            due=due,
            next_due=None,
            reason=f"condition: {rule.metric} {reading.value:g} {verdict} {op} {rule.threshold:g}",
            trigger=trigger,
            occurrence_start=as_utc(reading.recorded_at) if due else None,
        )
