"""
SQLAlchemy-backed PmTaskStore.

Every call opens its own session, so scheduler worker threads never share
one. Rows are converted to the value records in core.interfaces.records
before they leave this module.
"""

import logging
from dataclasses import asdict
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from core.clock import as_utc, to_db
from core.interfaces.pm_store import EmitCallback, PmTaskStore
from core.interfaces.records import AssignmentRecord, ConditionRuleRecord, PmTaskRecord, TaskRule, TriggerSpec
from modules.pm.errors import DataUnavailableError
from modules.pm.models import PmAssignment, PmConditionRule, PmSchedulerRun, PmTask
from modules.pm.types import RunReport

log = logging.getLogger("pm.store")


def _assignment_record(row: PmAssignment) -> AssignmentRecord:
    trigger = None
    if row.trigger_type or row.meter_threshold is not None:
        trigger = TriggerSpec(type=row.trigger_type, meter_threshold=row.meter_threshold)
    return AssignmentRecord(
        id=row.id,
        asset_id=row.asset_id,
        interval=row.interval,
        usage_metric=row.usage_metric,
        usage_target=row.usage_target,
        usage_lookback_days=row.usage_lookback_days,
        trigger=trigger,
        checklist=list(row.checklist or []),
        required_parts=list(row.required_parts or []),
        next_due=as_utc(row.next_due),
        last_generated_at=as_utc(row.last_generated_at),
    )


def _task_record(row: PmTask) -> PmTaskRecord:
    rule = None
    if row.rule_type:
        rule = TaskRule(
            kind=row.rule_type,
            cron=row.rule_cron,
            meter_name=row.rule_meter_name,
            threshold=row.rule_threshold,
        )
    assignments = sorted(row.assignments, key=lambda a: (a.position or 0, a.id))
    return PmTaskRecord(
        id=row.id,
        tenant_id=row.tenant_id,
        title=row.title,
        active=bool(row.active),
        site_id=row.site_id,
        rule=rule,
        notes=row.notes,
        department=row.department,
        assignments=tuple(_assignment_record(a) for a in assignments),
    )


def _condition_record(row: PmConditionRule) -> ConditionRuleRecord:
    return ConditionRuleRecord(
        id=row.id,
        tenant_id=row.tenant_id,
        asset_id=row.asset_id,
        metric=row.metric,
        operator=row.operator,
        threshold=row.threshold,
        title=row.title,
        description=row.description,
        department=row.department,
        site_id=row.site_id,
        active=bool(row.active),
        last_generated_at=as_utc(row.last_generated_at),
    )


class SqlPmTaskStore(PmTaskStore):

    def __init__(self, session_factory=None):
        if session_factory is None:
            from core.db import SessionLocal
            session_factory = SessionLocal
        self.session_factory = session_factory

    def load_active_pm_tasks(self, tenant_id: Optional[int] = None) -> list[PmTaskRecord]:
        db = self.session_factory()
        try:
            query = db.query(PmTask).options(selectinload(PmTask.assignments)).filter(PmTask.active == True)
            if tenant_id is not None:
                query = query.filter(PmTask.tenant_id == tenant_id)
            return [_task_record(t) for t in query.order_by(PmTask.id).all()]
        except SQLAlchemyError as e:
            raise DataUnavailableError(f"PM task store unavailable: {e}") from e
        finally:
            db.close()

    def load_active_condition_rules(self, tenant_id: Optional[int] = None) -> list[ConditionRuleRecord]:
        db = self.session_factory()
        try:
            query = db.query(PmConditionRule).filter(PmConditionRule.active == True)
            if tenant_id is not None:
                query = query.filter(PmConditionRule.tenant_id == tenant_id)
            return [_condition_record(r) for r in query.order_by(PmConditionRule.id).all()]
        except SQLAlchemyError as e:
            raise DataUnavailableError(f"Condition rule store unavailable: {e}") from e
        finally:
            db.close()

    @staticmethod
    def _compare_and_set(db, model, row_id: int, expected: Optional[datetime], values: dict) -> bool:
        query = db.query(model).filter(model.id == row_id)
        # WHERE last_generated_at = :expected guards against concurrent runs
        if expected is None:
            query = query.filter(model.last_generated_at.is_(None))
        else:
            query = query.filter(model.last_generated_at == to_db(expected))
        updated = query.update(values, synchronize_session=False)
        if updated != 1:
            log.debug(f"CAS on {model.__tablename__} {row_id} matched {updated} rows")
            return False
        return True

    @staticmethod
    def _roll_up_task(db, assignment_id: int) -> None:
        task_id = db.query(PmAssignment.task_id).filter(PmAssignment.id == assignment_id).scalar()
        latest = (
            db.query(func.max(PmAssignment.last_generated_at))
            .filter(PmAssignment.task_id == task_id)
            .scalar()
        )
        db.query(PmTask).filter(PmTask.id == task_id).update(
            {PmTask.last_generated_at: latest},
            synchronize_session=False,
        )

    def update_assignment_state(
        self,
        assignment_id: int,
        expected_last_generated_at: Optional[datetime],
        new_last_generated_at: Optional[datetime],
        next_due: Optional[datetime],
    ) -> bool:
        db = self.session_factory()
        try:
            values = {
                PmAssignment.last_generated_at: to_db(new_last_generated_at),
                PmAssignment.next_due: to_db(next_due),
            }
            if not self._compare_and_set(db, PmAssignment, assignment_id, expected_last_generated_at, values):
                db.rollback()
                return False
            self._roll_up_task(db, assignment_id)
            db.commit()
            return True
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def generate_work_item(
        self,
        assignment_id: int,
        expected_last_generated_at: Optional[datetime],
        new_last_generated_at: datetime,
        next_due: Optional[datetime],
        emit: EmitCallback,
    ) -> Optional[int]:
        values = {
            PmAssignment.last_generated_at: to_db(new_last_generated_at),
            PmAssignment.next_due: to_db(next_due),
        }
        return self._generate(
            PmAssignment, assignment_id, expected_last_generated_at, values, emit,
            after=lambda db: self._roll_up_task(db, assignment_id),
        )

    def generate_condition_work_item(
        self,
        rule_id: int,
        expected_last_generated_at: Optional[datetime],
        new_last_generated_at: datetime,
        emit: EmitCallback,
    ) -> Optional[int]:
        values = {PmConditionRule.last_generated_at: to_db(new_last_generated_at)}
        return self._generate(PmConditionRule, rule_id, expected_last_generated_at, values, emit)

    def _generate(self, model, row_id, expected, values, emit, after=None) -> Optional[int]:
        """CAS, emit and commit in one transaction; nothing is kept if emit raises."""
        db = self.session_factory()
        try:
            if not self._compare_and_set(db, model, row_id, expected, values):
                db.rollback()
                return None
            work_item_id = emit(db)
            if after is not None:
                after(db)
            db.commit()
            return work_item_id
        except SQLAlchemyError as e:
            db.rollback()
            raise DataUnavailableError(f"PM generation for {model.__tablename__} {row_id} failed: {e}") from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def record_next_due(self, assignment_id: int, next_due: Optional[datetime]) -> None:
        db = self.session_factory()
        try:
            db.query(PmAssignment).filter(PmAssignment.id == assignment_id).update(
                {PmAssignment.next_due: to_db(next_due)},
                synchronize_session=False,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def record_run(self, report: RunReport) -> None:
        db = self.session_factory()
        try:
            db.add(PmSchedulerRun(
                run_at=to_db(report.run_at),
                tenant_id=report.tenant_id,
                evaluated=report.evaluated,
                generated=report.generated,
                skipped=report.skipped,
                error_count=len(report.errors),
                duration_ms=report.duration_ms,
                errors=[asdict(e) for e in report.errors],
            ))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def recent_runs(self, limit: int = 50, tenant_id: Optional[int] = None) -> list[dict]:
        """Most recent scheduler runs, newest first."""
        db = self.session_factory()
        try:
            query = db.query(PmSchedulerRun)
            if tenant_id is not None:
                query = query.filter(PmSchedulerRun.tenant_id == tenant_id)
            rows = query.order_by(PmSchedulerRun.run_at.desc(), PmSchedulerRun.id.desc()).limit(limit).all()
            return [
                {
                    "id": r.id,
                    "run_at": as_utc(r.run_at),
                    "tenant_id": r.tenant_id,
                    "evaluated": r.evaluated or 0,
                    "generated": r.generated or 0,
                    "skipped": r.skipped or 0,
                    "error_count": r.error_count or 0,
                    "duration_ms": r.duration_ms,
                    "errors": r.errors or [],
                }
                for r in rows
            ]
        finally:
            db.close()
