"""
modules/sensors/models.py — ORM models for condition-monitoring telemetry.

Owns tables: sensor_readings
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Index
from sqlalchemy.sql import func

from core.base import Base


class SensorReading(Base):
    """One sampled value of a metric on an asset. recorded_at is naive UTC."""
    __tablename__ = "sensor_readings"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False)
    metric = Column(String(50), nullable=False)
    value = Column(Float, nullable=False)
    recorded_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("ix_sensor_readings_asset_metric_time", "asset_id", "metric", "recorded_at"),
    )
