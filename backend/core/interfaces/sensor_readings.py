# core/interfaces/sensor_readings.py
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from core.interfaces.records import SensorReadingRecord


class SensorReadingSource(ABC):
    """Condition-monitoring telemetry consumed by condition-based PM rules."""

    @abstractmethod
    def latest_reading(
        self,
        asset_id: int,
        tenant_id: int,
        metric: str,
        as_of: datetime,
    ) -> Optional[SensorReadingRecord]:
        """Most recent reading recorded at or before as_of, or None."""
        ...
