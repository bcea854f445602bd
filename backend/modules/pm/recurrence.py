"""
Calendar Evaluator.

Decides whether a recurrence expression has a due occurrence in
(last_generated_at, now] and reports the first occurrence after now.

Two expression forms are accepted:
  - five-field cron ("0 6 * * 1"), evaluated in UTC via croniter
  - textual cadences: daily, weekly, monthly, quarterly, biannually,
    annually/yearly, and "every N day(s)|week(s)|month(s)|year(s)"

Cron occurrences are absolute. Cadence occurrences are anchored at the last
generation (or at the stored next_due before the first generation), so a
cadence series restarts every time a work item is emitted.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from croniter import croniter
from dateutil.relativedelta import relativedelta

from core.clock import as_utc
from modules.pm.errors import ConfigurationError

log = logging.getLogger("pm.calendar")

_EVERY_RE = re.compile(r"^every\s+(\d+)\s*(day|week|month|year)s?$", re.IGNORECASE)

_EVERY_UNITS = {
    "day": lambda n: relativedelta(days=n),
    "week": lambda n: relativedelta(weeks=n),
    "month": lambda n: relativedelta(months=n),
    "year": lambda n: relativedelta(years=n),
}

_NAMED_CADENCES = {
    "daily": relativedelta(days=1),
    "weekly": relativedelta(weeks=1),
    "monthly": relativedelta(months=1),
    "quarterly": relativedelta(months=3),
    "biannually": relativedelta(months=6),
    "annually": relativedelta(years=1),
    "yearly": relativedelta(years=1),
}

# Upper bound on cadence steps walked past `now`; daily for 50 years.
_MAX_STEPS = 366 * 50


@dataclass(frozen=True)
class CalendarResult:
    due: bool
    next_occurrence: datetime
    # Earliest occurrence in (last_generated_at, now]; None when not due.
    due_occurrence: Optional[datetime] = None


def parse_cadence(expression: str) -> Optional[relativedelta]:
    """Return the step for a textual cadence, or None if it isn't one."""
    text = (expression or "").strip().lower()
    if text in _NAMED_CADENCES:
        return _NAMED_CADENCES[text]
    match = _EVERY_RE.match(text)
    if match:
        amount = int(match.group(1))
        if amount <= 0:
            raise ConfigurationError(f"Cadence {expression!r} must repeat at least every 1 {match.group(2)}")
        return _EVERY_UNITS[match.group(2).lower()](amount)
    return None


def is_cron(expression: str) -> bool:
    return len((expression or "").split()) == 5


class CalendarEvaluator:
    """Evaluates cron and cadence expressions against a last-fired timestamp."""

    def evaluate(
        self,
        expression: str,
        last_generated_at: Optional[datetime],
        now: datetime,
        next_due: Optional[datetime] = None,
    ) -> CalendarResult:
        if not expression or not expression.strip():
            raise ConfigurationError("Empty recurrence expression")

        now = as_utc(now)
        last_generated_at = as_utc(last_generated_at)

        step = parse_cadence(expression)
        if step is not None:
            return self._evaluate_cadence(step, last_generated_at, as_utc(next_due), now)
        if is_cron(expression):
            return self._evaluate_cron(expression.strip(), last_generated_at, now)
        raise ConfigurationError(f"Unrecognized recurrence expression {expression!r}")

    # ------------------------------------------------------------------
    # Cron
    # ------------------------------------------------------------------

    def _evaluate_cron(self, expression: str, last: Optional[datetime], now: datetime) -> CalendarResult:
        if not croniter.is_valid(expression):
            raise ConfigurationError(f"Invalid cron expression {expression!r}")

        try:
            next_occurrence = croniter(expression, now).get_next(datetime)
            # get_prev is strict, so start one second past now to include now itself
            latest = croniter(expression, now + timedelta(seconds=1)).get_prev(datetime)
            if last is None:
                return CalendarResult(due=True, next_occurrence=next_occurrence, due_occurrence=latest)
            if latest <= last:
                return CalendarResult(due=False, next_occurrence=next_occurrence)
            earliest = croniter(expression, last).get_next(datetime)
        except (ValueError, KeyError) as e:
            raise ConfigurationError(f"Invalid cron expression {expression!r}: {e}") from e

        return CalendarResult(due=True, next_occurrence=next_occurrence, due_occurrence=earliest)

    # ------------------------------------------------------------------
    # Cadence
    # ------------------------------------------------------------------

    def _evaluate_cadence(
        self,
        step: relativedelta,
        last: Optional[datetime],
        next_due: Optional[datetime],
        now: datetime,
    ) -> CalendarResult:
        if last is not None:
            anchor, k = last, 1
        elif next_due is not None:
            anchor, k = next_due, 0
        else:
            # Never generated and nothing scheduled: the first occurrence is now.
            return CalendarResult(due=True, next_occurrence=now + step, due_occurrence=now)

        first = anchor + step * k
        if first > now:
            return CalendarResult(due=False, next_occurrence=first)

        occurrence = first
        while occurrence <= now:
            k += 1
            if k > _MAX_STEPS:
                log.warning(f"Cadence anchored at {anchor.isoformat()} exceeds {_MAX_STEPS} steps before {now.isoformat()}")
                raise ConfigurationError("Cadence anchor is too far in the past to evaluate")
            # Multiply from the anchor so month-end dates don't drift.
            occurrence = anchor + step * k
        return CalendarResult(due=True, next_occurrence=occurrence, due_occurrence=first)

    def next_after_generation(self, expression: str, generated_at: datetime) -> datetime:
        """next_due to persist once a work item was emitted at generated_at."""
        return self.evaluate(expression, generated_at, generated_at).next_occurrence
