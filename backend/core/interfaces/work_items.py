# core/interfaces/work_items.py
from abc import ABC, abstractmethod

from core.interfaces.records import WorkItemInput


class WorkItemEmitter(ABC):
    """Creation contract of the work order lifecycle subsystem."""

    @abstractmethod
    def create_work_item(self, item: WorkItemInput, session=None) -> int:
        """Persist one work item and return its id.

        The PM store calls this from inside its compare-and-set transaction
        and passes that open session. A provider writing to the same database
        must write through it and leave commit/rollback to the caller, so the
        work item and the generation state land or vanish together. Without
        a session the provider manages its own transaction.
        """
        ...
