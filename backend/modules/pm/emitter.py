"""
Builds the work item for a due assignment or condition rule and hands it to
the work order subsystem. Asset lookups are best-effort; creation failures
are not.

build*() runs before the guard opens its transaction, so asset lookups never
share a connection with the pending CAS; emit() runs inside it.
"""

import logging
from datetime import datetime
from typing import Optional

from core.interfaces.asset_resolver import AssetResolver
from core.interfaces.records import (
    AssetRef, AssignmentRecord, ConditionRuleRecord, PmTaskRecord, WorkItemInput,
)
from core.interfaces.work_items import WorkItemEmitter
from modules.pm.errors import EmissionError
from modules.pm.types import ConditionTrigger, MeterTrigger, Verdict

log = logging.getLogger("pm.emitter")


def _qualified(title: str, asset: Optional[AssetRef]) -> str:
    if asset is not None and asset.name:
        return f"{title} - {asset.name}"
    return title


def work_item_title(task: PmTaskRecord, verdict: Verdict, asset: Optional[AssetRef] = None) -> str:
    prefix = "Meter PM" if isinstance(verdict.trigger, MeterTrigger) else "PM"
    return _qualified(f"{prefix}: {task.title}", asset)


def condition_title(rule: ConditionRuleRecord, asset: Optional[AssetRef] = None) -> str:
    """The rule's own title verbatim; otherwise a generated, asset-qualified one."""
    if rule.title:
        return rule.title
    return _qualified(f"Condition PM: {rule.metric} {rule.operator} {rule.threshold:g}", asset)


class PmWorkItemEmitter:

    def __init__(self, work_items: WorkItemEmitter, assets: Optional[AssetResolver] = None):
        self.work_items = work_items
        self.assets = assets

    def _resolve_asset(self, asset_id: Optional[int], tenant_id: int, owner: str) -> Optional[AssetRef]:
        if self.assets is None or asset_id is None:
            return None
        try:
            asset = self.assets.resolve_asset(asset_id, tenant_id)
        except Exception as e:
            log.warning(f"Asset {asset_id} lookup failed for {owner}: {e}")
            return None
        if asset is None:
            log.warning(f"Asset {asset_id} not found for {owner}; emitting without asset name")
        return asset

    def build(self, task: PmTaskRecord, assignment: AssignmentRecord, verdict: Verdict, now: datetime) -> WorkItemInput:
        asset = self._resolve_asset(assignment.asset_id, task.tenant_id, f"task {task.id}")
        if isinstance(verdict.trigger, MeterTrigger) or verdict.occurrence_start is None:
            due_date = now
        else:
            due_date = verdict.occurrence_start

        site_id = task.site_id
        if site_id is None and asset is not None:
            site_id = asset.site_id

        return WorkItemInput(
            task_id=task.id,
            assignment_id=assignment.id,
            tenant_id=task.tenant_id,
            title=work_item_title(task, verdict, asset),
            site_id=site_id,
            asset_id=assignment.asset_id,
            description=task.notes or "",
            department=task.department,
            due_date=due_date,
            checklist=list(assignment.checklist or []),
            required_parts=list(assignment.required_parts or []),
        )

    def build_condition(self, rule: ConditionRuleRecord, verdict: Verdict, now: datetime) -> WorkItemInput:
        asset = self._resolve_asset(rule.asset_id, rule.tenant_id, f"condition rule {rule.id}")
        trigger = verdict.trigger
        site_id = rule.site_id
        if site_id is None and asset is not None:
            site_id = asset.site_id

        description = rule.description
        if not description and isinstance(trigger, ConditionTrigger):
            description = f"Generated from condition {trigger.metric} {trigger.operator} {trigger.threshold:g}"

        return WorkItemInput(
            tenant_id=rule.tenant_id,
            title=condition_title(rule, asset),
            condition_rule_id=rule.id,
            site_id=site_id,
            asset_id=rule.asset_id,
            description=description or "",
            department=rule.department,
            due_date=now,
        )

    def emit(self, item: WorkItemInput, session=None) -> int:
        try:
            work_item_id = self.work_items.create_work_item(item, session=session)
        except Exception as e:
            raise EmissionError(
                f"Work item creation failed: {e}",
                task_id=item.task_id,
                assignment_id=item.assignment_id,
            ) from e
        if item.condition_rule_id is not None:
            log.info(f"Generated work item {work_item_id} '{item.title}' for condition rule {item.condition_rule_id}")
        else:
            log.info(
                f"Generated work item {work_item_id} '{item.title}' "
                f"for task {item.task_id} assignment {item.assignment_id}"
            )
        return work_item_id
