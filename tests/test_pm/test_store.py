"""
SqlPmTaskStore against in-memory SQLite.

Run: pytest tests/test_pm/test_store.py -v
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from core.interfaces.records import WorkItemInput
from helpers import NOW
from modules.assets.models import Asset
from modules.pm.errors import DataUnavailableError, EmissionError
from modules.pm.models import PmAssignment, PmConditionRule, PmSchedulerRun, PmTask
from modules.pm.store import SqlPmTaskStore
from modules.pm.types import AssignmentOutcome, OutcomeStatus, RunError, RunReport
from modules.work_orders.models import WorkOrder
from modules.work_orders.providers import SqlWorkItemEmitter


def _naive(dt):
    return dt.replace(tzinfo=None)


@pytest.fixture
def seeded(db):
    db.add_all([
        Asset(id=1, tenant_id=1, name="Press 1"),
        Asset(id=2, tenant_id=1, name="Press 2"),
        Asset(id=3, tenant_id=2, name="Lathe"),
    ])
    task = PmTask(
        id=1, tenant_id=1, title="Lubricate spindle", notes="ISO 68",
        rule_type="calendar", rule_cron="0 6 * * 1",
    )
    task.assignments = [
        PmAssignment(id=11, position=1, asset_id=2, usage_metric="runHours", usage_target=12,
                     trigger_type="meter", meter_threshold=12, checklist=["Check oil"]),
        PmAssignment(id=10, position=0, asset_id=1, interval="daily",
                     last_generated_at=_naive(NOW - timedelta(days=2))),
    ]
    db.add_all([
        task,
        PmTask(id=2, tenant_id=1, title="Retired", active=False,
               assignments=[PmAssignment(id=20, asset_id=1, interval="daily")]),
        PmTask(id=3, tenant_id=2, title="Other tenant",
               assignments=[PmAssignment(id=30, asset_id=3, interval="weekly")]),
    ])
    db.commit()
    return db


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

class TestLoad:
    def test_active_tasks_only(self, session_factory, seeded):
        tasks = SqlPmTaskStore(session_factory).load_active_pm_tasks()
        assert [t.id for t in tasks] == [1, 3]

    def test_tenant_filter(self, session_factory, seeded):
        tasks = SqlPmTaskStore(session_factory).load_active_pm_tasks(tenant_id=2)
        assert [t.id for t in tasks] == [3]

    def test_records_are_fully_populated(self, session_factory, seeded):
        task = SqlPmTaskStore(session_factory).load_active_pm_tasks(tenant_id=1)[0]
        assert task.title == "Lubricate spindle"
        assert task.notes == "ISO 68"
        assert task.rule.kind == "calendar"
        assert task.rule.cron == "0 6 * * 1"
        assert [a.id for a in task.assignments] == [10, 11]

        calendar, meter = task.assignments
        assert calendar.interval == "daily"
        assert calendar.trigger is None
        assert calendar.last_generated_at == NOW - timedelta(days=2)
        assert calendar.last_generated_at.tzinfo is not None
        assert meter.trigger.type == "meter"
        assert meter.trigger.meter_threshold == 12
        assert meter.checklist == ["Check oil"]
        assert meter.usage_lookback_days == 30

    def test_database_failure_is_data_unavailable(self):
        session = MagicMock()
        session.query.side_effect = OperationalError("SELECT", {}, Exception("disk I/O error"))
        store = SqlPmTaskStore(lambda: session)
        with pytest.raises(DataUnavailableError):
            store.load_active_pm_tasks()
        session.close.assert_called_once()


# ---------------------------------------------------------------------------
# Compare-and-set
# ---------------------------------------------------------------------------

class TestUpdateAssignmentState:
    def test_matching_expected_value_wins(self, session_factory, seeded):
        store = SqlPmTaskStore(session_factory)
        assert store.update_assignment_state(10, NOW - timedelta(days=2), NOW, NOW + timedelta(days=1))

        row = seeded.get(PmAssignment, 10)
        seeded.refresh(row)
        assert row.last_generated_at == _naive(NOW)
        assert row.next_due == _naive(NOW + timedelta(days=1))

    def test_stale_expected_value_loses(self, session_factory, seeded):
        store = SqlPmTaskStore(session_factory)
        assert not store.update_assignment_state(10, NOW - timedelta(days=3), NOW, None)

        row = seeded.get(PmAssignment, 10)
        seeded.refresh(row)
        assert row.last_generated_at == _naive(NOW - timedelta(days=2))

    def test_null_expected_value(self, session_factory, seeded):
        store = SqlPmTaskStore(session_factory)
        assert store.update_assignment_state(11, None, NOW, None)
        assert not store.update_assignment_state(11, None, NOW + timedelta(seconds=1), None)

    def test_second_claim_with_same_read_loses(self, session_factory, seeded):
        store = SqlPmTaskStore(session_factory)
        read = NOW - timedelta(days=2)
        assert store.update_assignment_state(10, read, NOW, None)
        assert not store.update_assignment_state(10, read, NOW + timedelta(seconds=1), None)

    def test_state_can_move_backwards(self, session_factory, seeded):
        store = SqlPmTaskStore(session_factory)
        read = NOW - timedelta(days=2)
        assert store.update_assignment_state(10, read, NOW, None)
        assert store.update_assignment_state(10, NOW, read, None)

        record = store.load_active_pm_tasks(tenant_id=1)[0].assignments[0]
        assert record.last_generated_at == read

    def test_task_tracks_latest_generation(self, session_factory, seeded):
        store = SqlPmTaskStore(session_factory)
        store.update_assignment_state(11, None, NOW - timedelta(hours=1), None)
        store.update_assignment_state(10, NOW - timedelta(days=2), NOW, None)

        task = seeded.get(PmTask, 1)
        seeded.refresh(task)
        assert task.last_generated_at == _naive(NOW)

    def test_record_next_due(self, session_factory, seeded):
        SqlPmTaskStore(session_factory).record_next_due(11, NOW + timedelta(days=7))
        row = seeded.get(PmAssignment, 11)
        seeded.refresh(row)
        assert row.next_due == _naive(NOW + timedelta(days=7))


# ---------------------------------------------------------------------------
# Generation unit of work
# ---------------------------------------------------------------------------

def _item(**kwargs):
    defaults = dict(task_id=1, assignment_id=10, tenant_id=1, title="PM: Lubricate spindle", asset_id=1)
    defaults.update(kwargs)
    return WorkItemInput(**defaults)


class TestGenerateWorkItem:
    def test_cas_and_work_order_commit_together(self, session_factory, seeded, bus, captured_events):
        store = SqlPmTaskStore(session_factory)
        emitter = SqlWorkItemEmitter(session_factory, bus=bus)

        work_order_id = store.generate_work_item(
            10, NOW - timedelta(days=2), NOW, NOW + timedelta(days=1),
            lambda session: emitter.create_work_item(_item(), session=session),
        )

        assert seeded.query(WorkOrder).filter(WorkOrder.id == work_order_id).count() == 1
        row = seeded.get(PmAssignment, 10)
        seeded.refresh(row)
        assert row.last_generated_at == _naive(NOW)
        assert row.next_due == _naive(NOW + timedelta(days=1))
        assert [e.data["work_order_id"] for e in captured_events] == [work_order_id]

    def test_emit_failure_rolls_back_both(self, session_factory, seeded, bus, captured_events):
        store = SqlPmTaskStore(session_factory)
        emitter = SqlWorkItemEmitter(session_factory, bus=bus)

        def emit_then_fail(session):
            emitter.create_work_item(_item(), session=session)
            raise EmissionError("downstream hook failed", assignment_id=10)

        with pytest.raises(EmissionError):
            store.generate_work_item(10, NOW - timedelta(days=2), NOW, None, emit_then_fail)

        assert seeded.query(WorkOrder).count() == 0
        assert captured_events == []
        record = store.load_active_pm_tasks(tenant_id=1)[0].assignments[0]
        assert record.last_generated_at == NOW - timedelta(days=2)

    def test_lost_cas_never_calls_emit(self, session_factory, seeded):
        emit = MagicMock(return_value=99)
        result = SqlPmTaskStore(session_factory).generate_work_item(10, NOW - timedelta(days=3), NOW, None, emit)
        assert result is None
        emit.assert_not_called()

    def test_task_tracks_latest_generation(self, session_factory, seeded):
        SqlPmTaskStore(session_factory).generate_work_item(11, None, NOW, None, lambda session: 1)
        task = seeded.get(PmTask, 1)
        seeded.refresh(task)
        assert task.last_generated_at == _naive(NOW)

    def test_database_error_is_data_unavailable(self, session_factory, seeded):
        def broken(session):
            raise OperationalError("INSERT", {}, Exception("database is locked"))

        with pytest.raises(DataUnavailableError):
            SqlPmTaskStore(session_factory).generate_work_item(10, NOW - timedelta(days=2), NOW, None, broken)


# ---------------------------------------------------------------------------
# Condition rules
# ---------------------------------------------------------------------------

@pytest.fixture
def rules(seeded):
    seeded.add_all([
        PmConditionRule(id=1, tenant_id=1, asset_id=1, metric="temperature", operator=">", threshold=80,
                        title="Inspect cooling", department="Maintenance"),
        PmConditionRule(id=2, tenant_id=1, asset_id=2, metric="vibration", operator=">=", threshold=4.5,
                        active=False),
        PmConditionRule(id=3, tenant_id=2, asset_id=3, metric="pressure", operator="<", threshold=2,
                        last_generated_at=_naive(NOW - timedelta(hours=1))),
    ])
    seeded.commit()
    return seeded


class TestConditionRules:
    def test_active_rules_only(self, session_factory, rules):
        assert [r.id for r in SqlPmTaskStore(session_factory).load_active_condition_rules()] == [1, 3]

    def test_tenant_filter_and_fields(self, session_factory, rules):
        (rule,) = SqlPmTaskStore(session_factory).load_active_condition_rules(tenant_id=2)
        assert (rule.metric, rule.operator, rule.threshold) == ("pressure", "<", 2)
        assert rule.last_generated_at == NOW - timedelta(hours=1)
        assert rule.last_generated_at.tzinfo is not None

    def test_condition_cas(self, session_factory, rules):
        store = SqlPmTaskStore(session_factory)
        assert store.generate_condition_work_item(3, NOW - timedelta(hours=1), NOW, lambda session: 7) == 7
        assert store.generate_condition_work_item(3, NOW - timedelta(hours=1), NOW, lambda session: 8) is None
        (rule,) = store.load_active_condition_rules(tenant_id=2)
        assert rule.last_generated_at == NOW

    def test_condition_emit_failure_keeps_state(self, session_factory, rules):
        store = SqlPmTaskStore(session_factory)

        def failing(session):
            raise EmissionError("work order service down")

        with pytest.raises(EmissionError):
            store.generate_condition_work_item(1, None, NOW, failing)
        assert store.load_active_condition_rules(tenant_id=1)[0].last_generated_at is None


# ---------------------------------------------------------------------------
# Run history
# ---------------------------------------------------------------------------

class TestRunHistory:
    def _report(self, run_at, tenant_id=None):
        report = RunReport(run_at=run_at, tenant_id=tenant_id, duration_ms=12.5)
        report.add(AssignmentOutcome(task_id=1, assignment_id=10, tenant_id=1,
                                     status=OutcomeStatus.GENERATED, reason="calendar(assignment): daily",
                                     work_item_id=7))
        report.add(AssignmentOutcome(task_id=1, assignment_id=11, tenant_id=1,
                                     status=OutcomeStatus.ERROR, reason="skipped: bad metric",
                                     error=RunError(1, 11, 1, "ConfigurationError", "bad metric")))
        return report

    def test_record_run(self, session_factory, db):
        SqlPmTaskStore(session_factory).record_run(self._report(NOW))
        row = db.query(PmSchedulerRun).one()
        assert row.run_at == _naive(NOW)
        assert (row.evaluated, row.generated, row.skipped, row.error_count) == (2, 1, 0, 1)
        assert row.errors[0]["kind"] == "ConfigurationError"
        assert row.duration_ms == 12.5

    def test_recent_runs_newest_first(self, session_factory):
        store = SqlPmTaskStore(session_factory)
        store.record_run(self._report(NOW - timedelta(hours=2)))
        store.record_run(self._report(NOW, tenant_id=1))

        runs = store.recent_runs(limit=10)
        assert [r["run_at"] for r in runs] == [NOW, NOW - timedelta(hours=2)]
        assert store.recent_runs(limit=1)[0]["tenant_id"] == 1
        assert len(store.recent_runs(tenant_id=1)) == 1
