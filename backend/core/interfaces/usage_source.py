# core/interfaces/usage_source.py
from abc import ABC, abstractmethod
from datetime import datetime


class UsageSource(ABC):
    """What the usage aggregator needs from production telemetry."""

    @abstractmethod
    def sum_usage(
        self,
        asset_id: int,
        tenant_id: int,
        metric: str,
        window_start: datetime,
        window_end: datetime,
    ) -> float:
        """Sum of the metric's samples with window_start <= recorded_at <= window_end.

        Returns 0 when there are no samples. Raises DataUnavailableError when
        the telemetry store can't be read.
        """
        ...
