"""
core/base.py — Declarative Base and shared enums.

All ORM models import Base from here.
All shared enums (used across multiple domain modules) live here
to avoid circular imports between domain modules.
"""

from enum import Enum
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# SQLAlchemy 2.x defaults to using enum member NAMES as DB values.
# We want member VALUES (lowercase strings) instead.
_ENUM_VALUES = lambda x: [e.value for e in x]


class TriggerType(str, Enum):
    """Per-assignment trigger descriptor type."""
    TIME = "time"
    METER = "meter"


class RuleKind(str, Enum):
    """Task-level (legacy/coarse) recurrence rule kind."""
    CALENDAR = "calendar"
    METER = "meter"


class UsageMetric(str, Enum):
    """Usage metrics the production telemetry can be summed by."""
    RUN_HOURS = "runHours"
    RUN_MINUTES = "runMinutes"
    CYCLES = "cycles"

    @classmethod
    def parse(cls, value: str) -> "UsageMetric":
        """Match a metric name case-insensitively, accepting snake/kebab spellings."""
        if not value:
            raise ValueError("usage metric is empty")
        normalized = value.strip().replace("_", "").replace("-", "").lower()
        for member in cls:
            if member.value.lower() == normalized:
                return member
        raise ValueError(f"unknown usage metric {value!r}")

    @property
    def native_field(self) -> str:
        """production_records column the metric is summed from."""
        if self is UsageMetric.CYCLES:
            return "actual_units"
        return "run_time_minutes"

    def from_native(self, total: float) -> float:
        """Convert a native-unit sum once, after accumulation."""
        if self is UsageMetric.RUN_HOURS:
            return total / 60.0
        return total


class WorkOrderStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class WorkOrderPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class WorkOrderType(str, Enum):
    PREVENTIVE = "preventive"
    CORRECTIVE = "corrective"
