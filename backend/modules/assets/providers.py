# modules/assets/providers.py — AssetResolver backed by the assets table

from typing import Optional

from core.interfaces.asset_resolver import AssetResolver
from core.interfaces.records import AssetRef
from modules.assets.models import Asset


class SqlAssetResolver(AssetResolver):

    def __init__(self, session_factory=None):
        if session_factory is None:
            from core.db import SessionLocal
            session_factory = SessionLocal
        self.session_factory = session_factory

    def resolve_asset(self, asset_id: int, tenant_id: int) -> Optional[AssetRef]:
        db = self.session_factory()
        try:
            asset = db.query(Asset).filter(
                Asset.id == asset_id,
                Asset.tenant_id == tenant_id,
            ).first()
            if asset is None:
                return None
            return AssetRef(id=asset.id, tenant_id=asset.tenant_id, name=asset.name, site_id=asset.site_id)
        finally:
            db.close()
