# modules/production/providers.py — UsageSource over production_records
#
# Sums are taken in the record's native unit (minutes or units) and converted
# once at the end, so run hours never accumulate rounding per record.

import logging
from datetime import datetime

from sqlalchemy import func

from core.base import UsageMetric
from core.clock import to_db
from core.interfaces.usage_source import UsageSource
from modules.production.models import ProductionRecord

log = logging.getLogger("production.usage")


class SqlUsageSource(UsageSource):

    def __init__(self, session_factory=None):
        if session_factory is None:
            from core.db import SessionLocal
            session_factory = SessionLocal
        self.session_factory = session_factory

    def sum_usage(
        self,
        asset_id: int,
        tenant_id: int,
        metric: str,
        window_start: datetime,
        window_end: datetime,
    ) -> float:
        usage_metric = UsageMetric.parse(metric)
        column = getattr(ProductionRecord, usage_metric.native_field)

        db = self.session_factory()
        try:
            total = db.query(func.coalesce(func.sum(column), 0)).filter(
                ProductionRecord.asset_id == asset_id,
                ProductionRecord.tenant_id == tenant_id,
                ProductionRecord.recorded_at >= to_db(window_start),
                ProductionRecord.recorded_at <= to_db(window_end),
            ).scalar()
        finally:
            db.close()

        return usage_metric.from_native(float(total or 0))
