"""
Usage Aggregator and Usage Evaluator.

Usage is evaluated per trailing window: the sum over [now - lookback, now]
is compared against the target with no baseline from the previous
generation. The generation guard keeps one window from producing more than
one work item.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple

from core.base import UsageMetric
from core.interfaces.usage_source import UsageSource
from core.clock import as_utc
from modules.pm.errors import ConfigurationError, DataUnavailableError

log = logging.getLogger("pm.usage")


def usage_window(now: datetime, lookback_days: int) -> Tuple[datetime, datetime]:
    """Inclusive [start, end] window ending at now."""
    if lookback_days is None or lookback_days <= 0:
        raise ConfigurationError(f"Usage lookback must be positive, got {lookback_days!r}")
    now = as_utc(now)
    return now - timedelta(days=lookback_days), now


def parse_metric(metric: Optional[str]) -> UsageMetric:
    if not metric:
        raise ConfigurationError("Usage trigger has no metric")
    try:
        return UsageMetric.parse(metric)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


class UsageAggregator:
    """Sums an asset's usage over a trailing window through a UsageSource."""

    def __init__(self, source: UsageSource):
        self.source = source

    def aggregate(
        self,
        asset_id: Optional[int],
        tenant_id: int,
        metric: str,
        lookback_days: int,
        now: datetime,
    ) -> float:
        usage_metric = parse_metric(metric)
        if asset_id is None:
            raise ConfigurationError("Usage trigger on an assignment with no asset")
        start, end = usage_window(now, lookback_days)

        try:
            value = self.source.sum_usage(asset_id, tenant_id, usage_metric.value, start, end)
        except (DataUnavailableError, ConfigurationError):
            raise
        except Exception as e:
            raise DataUnavailableError(
                f"Usage for asset {asset_id} unavailable: {e}"
            ) from e

        total = float(value or 0)
        log.debug(
            f"Asset {asset_id} {usage_metric.value} over {lookback_days}d "
            f"[{start.isoformat()} .. {end.isoformat()}] = {total}"
        )
        return total


class UsageEvaluator:
    """due = usage >= target. Non-positive targets are configuration errors."""

    def evaluate(self, usage: float, target: Optional[float]) -> bool:
        if target is None or target <= 0:
            raise ConfigurationError(f"Usage target must be positive, got {target!r}")
        return usage >= target
