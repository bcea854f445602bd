# modules/sensors/providers.py — SensorReadingSource over sensor_readings

from datetime import datetime
from typing import Optional

from core.clock import as_utc, to_db
from core.interfaces.records import SensorReadingRecord
from core.interfaces.sensor_readings import SensorReadingSource
from modules.sensors.models import SensorReading


class SqlSensorReadingSource(SensorReadingSource):

    def __init__(self, session_factory=None):
        if session_factory is None:
            from core.db import SessionLocal
            session_factory = SessionLocal
        self.session_factory = session_factory

    def latest_reading(
        self,
        asset_id: int,
        tenant_id: int,
        metric: str,
        as_of: datetime,
    ) -> Optional[SensorReadingRecord]:
        db = self.session_factory()
        try:
            row = (
                db.query(SensorReading)
                .filter(
                    SensorReading.asset_id == asset_id,
                    SensorReading.tenant_id == tenant_id,
                    SensorReading.metric == metric,
                    SensorReading.recorded_at <= to_db(as_of),
                )
                .order_by(SensorReading.recorded_at.desc(), SensorReading.id.desc())
                .first()
            )
            if row is None:
                return None
            return SensorReadingRecord(
                asset_id=row.asset_id,
                metric=row.metric,
                value=float(row.value),
                recorded_at=as_utc(row.recorded_at),
            )
        finally:
            db.close()
