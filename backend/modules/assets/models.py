"""
modules/assets/models.py — ORM models for the asset registry.

Owns tables: assets
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func

from core.base import Base


class Asset(Base):
    """A maintainable piece of equipment within a tenant."""
    __tablename__ = "assets"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    site_id = Column(Integer, nullable=True)
    name = Column(String(200), nullable=False)
    asset_tag = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<Asset {self.id}: {self.name}>"
