# core/interfaces/records.py
#
# Plain value objects that cross the PM engine's collaborator boundary.
# Stores build these from their own rows; the engine never sees ORM objects.

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class TaskRule:
    """Task-level recurrence: kind 'calendar' (cron) or 'meter' (meter_name + threshold)."""
    kind: Optional[str] = None
    cron: Optional[str] = None
    meter_name: Optional[str] = None
    threshold: Optional[float] = None


@dataclass(frozen=True)
class TriggerSpec:
    """Assignment trigger descriptor as stored: type 'time' | 'meter'."""
    type: Optional[str] = None
    meter_threshold: Optional[float] = None


@dataclass(frozen=True)
class AssignmentRecord:
    id: int
    asset_id: Optional[int]
    interval: Optional[str] = None
    usage_metric: Optional[str] = None
    usage_target: Optional[float] = None
    usage_lookback_days: Optional[int] = None
    trigger: Optional[TriggerSpec] = None
    checklist: list = field(default_factory=list)
    required_parts: list = field(default_factory=list)
    next_due: Optional[datetime] = None
    last_generated_at: Optional[datetime] = None


@dataclass(frozen=True)
class PmTaskRecord:
    id: int
    tenant_id: int
    title: str
    active: bool = True
    site_id: Optional[int] = None
    rule: Optional[TaskRule] = None
    notes: Optional[str] = None
    department: Optional[str] = None
    assignments: tuple = ()


@dataclass(frozen=True)
class AssetRef:
    id: int
    tenant_id: int
    name: str
    site_id: Optional[int] = None


@dataclass(frozen=True)
class WorkItemInput:
    """Everything the emitter needs to create one maintenance work item.

    Task-driven items carry task_id and assignment_id; condition-driven items
    carry condition_rule_id instead.
    """
    tenant_id: int
    title: str
    task_id: Optional[int] = None
    assignment_id: Optional[int] = None
    condition_rule_id: Optional[int] = None
    site_id: Optional[int] = None
    asset_id: Optional[int] = None
    description: str = ""
    department: Optional[str] = None
    due_date: Optional[datetime] = None
    checklist: list = field(default_factory=list)
    required_parts: list = field(default_factory=list)


@dataclass(frozen=True)
class ConditionRuleRecord:
    """Condition-based PM rule: emit when the asset's latest reading matches."""
    id: int
    tenant_id: int
    asset_id: int
    metric: str
    operator: str
    threshold: float
    title: Optional[str] = None
    description: Optional[str] = None
    department: Optional[str] = None
    site_id: Optional[int] = None
    active: bool = True
    last_generated_at: Optional[datetime] = None


@dataclass(frozen=True)
class SensorReadingRecord:
    asset_id: int
    metric: str
    value: float
    recorded_at: datetime
