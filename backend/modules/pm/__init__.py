MODULE_ID = "pm"
MODULE_VERSION = "1.0.0"
MODULE_DESCRIPTION = "Preventive maintenance scheduler: calendar, usage and condition triggers, guarded work item generation"

ROUTES = [
    "pm.routes",
]

TABLES = [
    "pm_tasks",
    "pm_assignments",
    "pm_condition_rules",
    "pm_scheduler_runs",
]

PUBLISHES = [
    "pm.work_item_generated",
    "pm.run_completed",
]

SUBSCRIBES = []

IMPLEMENTS = ["PmTaskStore"]

REQUIRES = ["UsageSource", "AssetResolver", "WorkItemEmitter", "SensorReadingSource"]

DAEMONS = [
    "pm.daemon",
]


def register_providers(registry, session_factory=None, bus=None) -> None:
    """Register the PmTaskStore backed by pm_tasks / pm_assignments."""
    from modules.pm.store import SqlPmTaskStore

    registry.register_provider("PmTaskStore", SqlPmTaskStore(session_factory))


def register(app, registry) -> None:
    """Register the pm module routes."""
    from modules.pm import routes

    app.include_router(routes.router, prefix="/api")
    app.include_router(routes.router, prefix="/api/v1")
