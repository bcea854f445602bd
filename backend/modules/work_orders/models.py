"""
modules/work_orders/models.py — ORM models for work orders.

Owns tables: work_orders

Only the creation side lives here; assignment, completion and the rest of the
lifecycle belong to the work order subsystem proper.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, JSON, Enum as SQLEnum
from sqlalchemy.sql import func

from core.base import Base, WorkOrderStatus, WorkOrderPriority, WorkOrderType, _ENUM_VALUES


class WorkOrder(Base):
    __tablename__ = "work_orders"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    site_id = Column(Integer, nullable=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=True)

    title = Column(String(300), nullable=False)
    description = Column(Text, default="")
    department = Column(String(100), nullable=True)

    status = Column(SQLEnum(WorkOrderStatus, values_callable=_ENUM_VALUES), default=WorkOrderStatus.OPEN)
    priority = Column(SQLEnum(WorkOrderPriority, values_callable=_ENUM_VALUES), default=WorkOrderPriority.MEDIUM)
    type = Column(SQLEnum(WorkOrderType, values_callable=_ENUM_VALUES), default=WorkOrderType.PREVENTIVE)
    due_date = Column(DateTime, nullable=True)

    # Originating PM task / assignment or condition rule
    pm_task_id = Column(Integer, ForeignKey("pm_tasks.id"), nullable=True, index=True)
    pm_assignment_id = Column(Integer, ForeignKey("pm_assignments.id"), nullable=True, index=True)
    pm_condition_rule_id = Column(Integer, ForeignKey("pm_condition_rules.id"), nullable=True, index=True)

    checklist = Column(JSON, default=list)
    required_parts = Column(JSON, default=list)

    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<WorkOrder {self.id}: {self.title}>"
