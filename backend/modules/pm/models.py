"""
modules/pm/models.py — ORM models for the preventive maintenance domain.

Owns tables: pm_tasks, pm_assignments, pm_condition_rules, pm_scheduler_runs

All DateTime columns hold naive UTC; modules/pm/store.py converts at the
boundary. asset_id references assets.id by table name to avoid cross-module
model imports.
"""

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, Boolean,
    ForeignKey, Text, JSON
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from core.base import Base


class PmTask(Base):
    """
    A named maintenance program within a tenant.

    The rule_* columns are the legacy task-level recurrence applied to every
    assignment that doesn't carry its own.
    """
    __tablename__ = "pm_tasks"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    site_id = Column(Integer, nullable=True)
    title = Column(String(200), nullable=False)
    notes = Column(Text, nullable=True)
    department = Column(String(100), nullable=True)
    active = Column(Boolean, default=True, nullable=False)

    # Task-level rule
    rule_type = Column(String(20), nullable=True)        # "calendar" | "meter"
    rule_cron = Column(String(100), nullable=True)       # calendar form
    rule_meter_name = Column(String(50), nullable=True)  # meter form, e.g. "runHours"
    rule_threshold = Column(Float, nullable=True)

    # Engine-owned
    last_generated_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    assignments = relationship(
        "PmAssignment",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="PmAssignment.position",
    )

    def __repr__(self):
        return f"<PmTask {self.id}: {self.title}>"


class PmAssignment(Base):
    """One (asset, recurrence) pairing inside a PM task."""
    __tablename__ = "pm_assignments"

    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("pm_tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, default=0)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=True)

    # Calendar cadence, e.g. "weekly", "every 3 months"
    interval = Column(String(100), nullable=True)

    # Usage rule
    usage_metric = Column(String(50), nullable=True)     # runHours | runMinutes | cycles
    usage_target = Column(Float, nullable=True)
    usage_lookback_days = Column(Integer, default=30)

    # Trigger descriptor
    trigger_type = Column(String(20), nullable=True)     # "time" | "meter"
    meter_threshold = Column(Float, nullable=True)

    # Passed through to the work item untouched
    checklist = Column(JSON, default=list)
    required_parts = Column(JSON, default=list)

    # Engine-owned state
    next_due = Column(DateTime, nullable=True)
    last_generated_at = Column(DateTime, nullable=True)

    task = relationship("PmTask", back_populates="assignments")

    def __repr__(self):
        return f"<PmAssignment {self.id} task={self.task_id} asset={self.asset_id}>"


class PmConditionRule(Base):
    """
    Condition-based PM: generate when the asset's latest reading for metric
    satisfies `value <operator> threshold`.
    """
    __tablename__ = "pm_condition_rules"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    site_id = Column(Integer, nullable=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False, index=True)

    metric = Column(String(50), nullable=False)          # e.g. "temperature", "vibration"
    operator = Column(String(2), nullable=False)         # > < >= <= ==
    threshold = Column(Float, nullable=False)

    # Work item template; title is used verbatim when set
    title = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)
    department = Column(String(100), nullable=True)

    active = Column(Boolean, default=True, nullable=False)

    # Engine-owned: timestamp of the reading-triggered run that last generated
    last_generated_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<PmConditionRule {self.id}: {self.metric} {self.operator} {self.threshold}>"


class PmSchedulerRun(Base):
    """
    Log of PM scheduler passes for debugging and metrics.
    """
    __tablename__ = "pm_scheduler_runs"

    id = Column(Integer, primary_key=True)
    run_at = Column(DateTime, nullable=False)
    tenant_id = Column(Integer, nullable=True)  # null = all tenants

    # Metrics
    evaluated = Column(Integer, default=0)
    generated = Column(Integer, default=0)
    skipped = Column(Integer, default=0)
    error_count = Column(Integer, default=0)
    duration_ms = Column(Float)

    # Debug info
    errors = Column(JSON, default=list)
