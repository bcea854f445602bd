MODULE_ID = "sensors"
MODULE_VERSION = "1.0.0"
MODULE_DESCRIPTION = "Condition-monitoring readings for condition-based PM rules"

ROUTES = []

TABLES = [
    "sensor_readings",
]

PUBLISHES = []

SUBSCRIBES = []

IMPLEMENTS = ["SensorReadingSource"]

REQUIRES = []

DAEMONS = []


def register_providers(registry, session_factory=None, bus=None) -> None:
    """Register the sensors module: SensorReadingSource."""
    from modules.sensors.providers import SqlSensorReadingSource

    registry.register_provider("SensorReadingSource", SqlSensorReadingSource(session_factory))
