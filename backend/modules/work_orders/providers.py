# modules/work_orders/providers.py — WorkItemEmitter writing work_orders rows
#
# With a caller's session the row is only flushed; the caller commits, and
# work_order.created goes out once that commit lands.

import logging
from typing import Optional

from sqlalchemy import event

from core.base import WorkOrderPriority, WorkOrderStatus, WorkOrderType
from core.clock import to_db
from core.events import WORK_ORDER_CREATED
from core.interfaces.event_bus import Event, EventBus
from core.interfaces.records import WorkItemInput
from core.interfaces.work_items import WorkItemEmitter
from modules.work_orders.models import WorkOrder

log = logging.getLogger("work_orders")


def _work_order(item: WorkItemInput) -> WorkOrder:
    return WorkOrder(
        tenant_id=item.tenant_id,
        site_id=item.site_id,
        asset_id=item.asset_id,
        title=item.title,
        description=item.description or "",
        department=item.department,
        status=WorkOrderStatus.OPEN,
        priority=WorkOrderPriority.MEDIUM,
        type=WorkOrderType.PREVENTIVE,
        due_date=to_db(item.due_date),
        pm_task_id=item.task_id,
        pm_assignment_id=item.assignment_id,
        pm_condition_rule_id=item.condition_rule_id,
        checklist=list(item.checklist),
        required_parts=list(item.required_parts),
    )


class SqlWorkItemEmitter(WorkItemEmitter):

    def __init__(self, session_factory=None, bus: Optional[EventBus] = None):
        if session_factory is None:
            from core.db import SessionLocal
            session_factory = SessionLocal
        self.session_factory = session_factory
        self.bus = bus

    def create_work_item(self, item: WorkItemInput, session=None) -> int:
        if session is not None:
            work_order = _work_order(item)
            session.add(work_order)
            session.flush()
            work_order_id = work_order.id
            event.listen(session, "after_commit", lambda _s: self._announce(work_order_id, item), once=True)
            log.debug(f"Work order {work_order_id} staged in caller's transaction")
            return work_order_id

        db = self.session_factory()
        try:
            work_order = _work_order(item)
            db.add(work_order)
            db.commit()
            work_order_id = work_order.id
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        self._announce(work_order_id, item)
        return work_order_id

    def _announce(self, work_order_id: int, item: WorkItemInput) -> None:
        if self.bus is None:
            return
        self.bus.publish(Event(
            event_type=WORK_ORDER_CREATED,
            source_module="work_orders",
            data={
                "work_order_id": work_order_id,
                "tenant_id": item.tenant_id,
                "pm_task_id": item.task_id,
                "pm_condition_rule_id": item.condition_rule_id,
            },
        ))
