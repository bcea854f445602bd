"""
PM engine error taxonomy.

ConfigurationError and DataUnavailableError skip one assignment for one pass.
ConcurrencyLostError is a normal outcome (another run got there first).
EmissionError means the CAS matched but the work item couldn't be created; the
unit of work rolls back with it, so the next pass retries.
"""

from typing import Optional


class PmEngineError(Exception):
    """Base class for per-assignment engine failures."""

    def __init__(self, message: str, task_id: Optional[int] = None, assignment_id: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.task_id = task_id
        self.assignment_id = assignment_id


class ConfigurationError(PmEngineError):
    """Malformed recurrence, non-positive threshold, missing or unknown metric."""


class DataUnavailableError(PmEngineError):
    """A read-only collaborator (telemetry, rule store) couldn't be reached."""


class ConcurrencyLostError(PmEngineError):
    """The compare-and-set on last_generated_at found a different value."""


class EmissionError(PmEngineError):
    """The work item emitter failed inside the guard's unit of work."""
