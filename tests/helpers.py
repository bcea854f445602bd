"""
In-memory collaborators and record builders shared by the PM engine tests.
"""

import itertools
import sys
import threading
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1] / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from core.base import UsageMetric  # noqa: E402
from core.clock import as_utc  # noqa: E402
from core.interfaces.asset_resolver import AssetResolver  # noqa: E402
from core.interfaces.pm_store import PmTaskStore  # noqa: E402
from core.interfaces.records import (  # noqa: E402
    AssignmentRecord, ConditionRuleRecord, PmTaskRecord, SensorReadingRecord, TriggerSpec,
)
from core.interfaces.sensor_readings import SensorReadingSource  # noqa: E402
from core.interfaces.usage_source import UsageSource  # noqa: E402
from core.interfaces.work_items import WorkItemEmitter  # noqa: E402
from modules.pm.engine import PmScheduler  # noqa: E402

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_assignment(id=1, asset_id=1, **kwargs) -> AssignmentRecord:
    return AssignmentRecord(id=id, asset_id=asset_id, **kwargs)


def make_task(id=1, tenant_id=1, title="Lubricate spindle", assignments=(), **kwargs) -> PmTaskRecord:
    return PmTaskRecord(id=id, tenant_id=tenant_id, title=title, assignments=tuple(assignments), **kwargs)


def meter_assignment(id=1, asset_id=1, target=12, metric="runHours", lookback=30, **kwargs) -> AssignmentRecord:
    return make_assignment(
        id=id,
        asset_id=asset_id,
        usage_metric=metric,
        usage_target=target,
        usage_lookback_days=lookback,
        trigger=TriggerSpec(type="meter", meter_threshold=target),
        **kwargs,
    )


def make_condition_rule(id=1, tenant_id=1, asset_id=1, metric="temperature", operator=">", threshold=80.0, **kwargs) -> ConditionRuleRecord:
    return ConditionRuleRecord(
        id=id, tenant_id=tenant_id, asset_id=asset_id,
        metric=metric, operator=operator, threshold=threshold, **kwargs,
    )


def hours(n: float) -> float:
    """Run minutes for n hours."""
    return n * 60


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeStore(PmTaskStore):
    """
    Holds task definitions and condition rules plus mutable generation state.

    Inactive tasks are returned like any other so the engine's own filter is
    exercised. The CAS is serialized with a lock, as a database would, and
    generate_* keeps the state untouched when emit raises, as a rollback would.
    """

    def __init__(self, tasks=(), conditions=()):
        self._lock = threading.Lock()
        self.tasks = list(tasks)
        self.conditions = list(conditions)
        self.state = {
            a.id: (a.last_generated_at, a.next_due)
            for t in self.tasks
            for a in t.assignments
        }
        self.condition_state = {r.id: r.last_generated_at for r in self.conditions}
        self.next_due_updates = []
        self.runs = []
        self.cas_calls = 0

    def load_active_pm_tasks(self, tenant_id=None):
        result = []
        for task in self.tasks:
            if tenant_id is not None and task.tenant_id != tenant_id:
                continue
            assignments = tuple(
                replace(a, last_generated_at=self.state[a.id][0], next_due=self.state[a.id][1])
                for a in task.assignments
            )
            result.append(replace(task, assignments=assignments))
        return result

    def load_active_condition_rules(self, tenant_id=None):
        return [
            replace(r, last_generated_at=self.condition_state[r.id])
            for r in self.conditions
            if tenant_id is None or r.tenant_id == tenant_id
        ]

    def update_assignment_state(self, assignment_id, expected_last_generated_at, new_last_generated_at, next_due):
        with self._lock:
            self.cas_calls += 1
            current, _ = self.state[assignment_id]
            if as_utc(current) != as_utc(expected_last_generated_at):
                return False
            self.state[assignment_id] = (new_last_generated_at, next_due)
            return True

    def generate_work_item(self, assignment_id, expected_last_generated_at, new_last_generated_at, next_due, emit):
        with self._lock:
            self.cas_calls += 1
            current, _ = self.state[assignment_id]
            if as_utc(current) != as_utc(expected_last_generated_at):
                return None
            work_item_id = emit(None)
            self.state[assignment_id] = (new_last_generated_at, next_due)
            return work_item_id

    def generate_condition_work_item(self, rule_id, expected_last_generated_at, new_last_generated_at, emit):
        with self._lock:
            self.cas_calls += 1
            if as_utc(self.condition_state[rule_id]) != as_utc(expected_last_generated_at):
                return None
            work_item_id = emit(None)
            self.condition_state[rule_id] = new_last_generated_at
            return work_item_id

    def record_next_due(self, assignment_id, next_due):
        last, _ = self.state[assignment_id]
        self.state[assignment_id] = (last, next_due)
        self.next_due_updates.append((assignment_id, next_due))

    def record_run(self, report):
        self.runs.append(report)

    def last_generated_at(self, assignment_id):
        return self.state[assignment_id][0]

    def next_due(self, assignment_id):
        return self.state[assignment_id][1]


class FakeUsageSource(UsageSource):
    """Production samples as (asset_id, tenant_id, recorded_at, run_minutes, units)."""

    def __init__(self, samples=()):
        self.samples = list(samples)
        self.calls = []

    def add(self, asset_id, recorded_at, run_minutes=0.0, units=0.0, tenant_id=1):
        self.samples.append((asset_id, tenant_id, recorded_at, run_minutes, units))

    def sum_usage(self, asset_id, tenant_id, metric, window_start, window_end):
        self.calls.append((asset_id, tenant_id, metric, window_start, window_end))
        usage_metric = UsageMetric.parse(metric)
        total = 0.0
        for s_asset, s_tenant, recorded_at, run_minutes, units in self.samples:
            if s_asset != asset_id or s_tenant != tenant_id:
                continue
            if not (window_start <= recorded_at <= window_end):
                continue
            total += units if usage_metric is UsageMetric.CYCLES else run_minutes
        return usage_metric.from_native(total)


class FakeAssetResolver(AssetResolver):

    def __init__(self, assets=()):
        self.assets = {(a.id, a.tenant_id): a for a in assets}

    def resolve_asset(self, asset_id, tenant_id):
        return self.assets.get((asset_id, tenant_id))


class FakeWorkItems(WorkItemEmitter):
    """Records created items; fail_for / fail_for_rules hold ids whose creation raises."""

    def __init__(self, fail_for=(), fail_for_rules=()):
        self.items = []
        self.sessions = []
        self.fail_for = set(fail_for)
        self.fail_for_rules = set(fail_for_rules)
        self._ids = itertools.count(1001)
        self._lock = threading.Lock()

    def create_work_item(self, item, session=None):
        if item.assignment_id in self.fail_for or item.condition_rule_id in self.fail_for_rules:
            raise RuntimeError("work order service unavailable")
        with self._lock:
            self.items.append(item)
            self.sessions.append(session)
            return next(self._ids)


class FakeSensorReadings(SensorReadingSource):
    """Readings as SensorReadingRecord; latest_reading honours as_of like the SQL source."""

    def __init__(self, readings=()):
        self.readings = list(readings)
        self.calls = []

    def add(self, asset_id, metric, value, recorded_at):
        self.readings.append(SensorReadingRecord(asset_id=asset_id, metric=metric, value=value, recorded_at=recorded_at))

    def latest_reading(self, asset_id, tenant_id, metric, as_of):
        self.calls.append((asset_id, tenant_id, metric, as_of))
        matches = [
            r for r in self.readings
            if r.asset_id == asset_id and r.metric == metric and r.recorded_at <= as_of
        ]
        return max(matches, key=lambda r: r.recorded_at) if matches else None


def make_scheduler(store, usage=None, work_items=None, assets=None, bus=None, max_workers=1, sensor_readings=None, **kwargs):
    return PmScheduler(
        store=store,
        usage_source=usage if usage is not None else FakeUsageSource(),
        work_items=work_items if work_items is not None else FakeWorkItems(),
        assets=assets,
        event_bus=bus,
        max_workers=max_workers,
        default_lookback_days=kwargs.pop("default_lookback_days", 30),
        sensor_readings=sensor_readings,
        **kwargs,
    )
