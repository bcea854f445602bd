"""
modules/pm/schemas.py — Pydantic request/response schemas for the pm module.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RunRequest(BaseModel):
    """Body of POST /pm/run. Omit tenant_id to run every tenant.

    now overrides the evaluation instant and is only accepted in debug mode.
    """
    tenant_id: Optional[int] = None
    now: Optional[datetime] = None


class RunErrorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    task_id: Optional[int] = None
    assignment_id: Optional[int] = None
    tenant_id: Optional[int] = None
    kind: str
    message: str
    rule_id: Optional[int] = None


class AssignmentOutcomeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    task_id: Optional[int] = None
    assignment_id: Optional[int] = None
    tenant_id: int
    status: str
    reason: str
    rule_id: Optional[int] = None
    work_item_id: Optional[int] = None
    next_due: Optional[datetime] = None


class RunReportResponse(BaseModel):
    """Result of one scheduler pass."""
    model_config = ConfigDict(from_attributes=True)

    success: bool
    run_at: datetime
    tenant_id: Optional[int] = None
    evaluated: int
    generated: int
    skipped: int
    duration_ms: float
    message: str
    errors: List[RunErrorResponse] = Field(default_factory=list)
    outcomes: List[AssignmentOutcomeResponse] = Field(default_factory=list)


class SchedulerRunResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    run_at: datetime
    tenant_id: Optional[int] = None
    evaluated: int
    generated: int
    skipped: int
    error_count: int
    duration_ms: Optional[float] = None
    errors: List[RunErrorResponse] = Field(default_factory=list)
