MODULE_ID = "production"
MODULE_VERSION = "1.0.0"
MODULE_DESCRIPTION = "Production telemetry records summed into asset usage"

ROUTES = []

TABLES = [
    "production_records",
]

PUBLISHES = []

SUBSCRIBES = []

IMPLEMENTS = ["UsageSource"]

REQUIRES = []

DAEMONS = []


def register_providers(registry, session_factory=None, bus=None) -> None:
    """Register the production module: UsageSource."""
    from modules.production.providers import SqlUsageSource

    registry.register_provider("UsageSource", SqlUsageSource(session_factory))
