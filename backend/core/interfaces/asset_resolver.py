# core/interfaces/asset_resolver.py
from abc import ABC, abstractmethod
from typing import Optional

from core.interfaces.records import AssetRef


class AssetResolver(ABC):
    """Tenant-scoped asset lookup, used to qualify work item titles."""

    @abstractmethod
    def resolve_asset(self, asset_id: int, tenant_id: int) -> Optional[AssetRef]:
        """Returns None when the asset doesn't exist in that tenant."""
        ...
