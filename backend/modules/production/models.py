"""
modules/production/models.py — ORM models for production telemetry.

Owns tables: production_records

Rows are written by the production side and only ever read here.
"""

from sqlalchemy import Column, Integer, Float, DateTime, ForeignKey
from sqlalchemy.sql import func

from core.base import Base


class ProductionRecord(Base):
    """Runtime and output reported for one asset over one reporting period."""
    __tablename__ = "production_records"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False, index=True)
    recorded_at = Column(DateTime, nullable=False, index=True)  # naive UTC

    run_time_minutes = Column(Float, default=0)
    actual_units = Column(Float, default=0)  # cycles / parts produced

    created_at = Column(DateTime, server_default=func.now())
