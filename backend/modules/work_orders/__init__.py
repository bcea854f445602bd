MODULE_ID = "work_orders"
MODULE_VERSION = "1.0.0"
MODULE_DESCRIPTION = "Work order creation for generated preventive maintenance"

ROUTES = []

TABLES = [
    "work_orders",
]

PUBLISHES = [
    "work_order.created",
]

SUBSCRIBES = []

IMPLEMENTS = ["WorkItemEmitter"]

REQUIRES = []

DAEMONS = []


def register_providers(registry, session_factory=None, bus=None) -> None:
    """Register the work orders module: WorkItemEmitter."""
    from modules.work_orders.providers import SqlWorkItemEmitter

    registry.register_provider("WorkItemEmitter", SqlWorkItemEmitter(session_factory, bus=bus))
