# core/events.py — canonical event type definitions
# All cross-module communication should use these constants as event_type values.

# PM scheduler events
PM_WORK_ITEM_GENERATED = "pm.work_item_generated"     # {task_id, assignment_id, tenant_id, work_item_id, reason}
PM_RUN_COMPLETED = "pm.run_completed"                 # {tenant_id, evaluated, generated, skipped, errors}

# Work order events
WORK_ORDER_CREATED = "work_order.created"             # {work_order_id, tenant_id, pm_task_id}
