MODULE_ID = "assets"
MODULE_VERSION = "1.0.0"
MODULE_DESCRIPTION = "Asset registry lookups used to qualify PM work item titles"

ROUTES = []

TABLES = [
    "assets",
]

PUBLISHES = []

SUBSCRIBES = []

IMPLEMENTS = ["AssetResolver"]

REQUIRES = []

DAEMONS = []


def register_providers(registry, session_factory=None, bus=None) -> None:
    """Register the assets module: AssetResolver."""
    from modules.assets.providers import SqlAssetResolver

    registry.register_provider("AssetResolver", SqlAssetResolver(session_factory))
