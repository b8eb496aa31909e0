"""Task results — explicit values produced by the pass driver."""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict


class TaskState(str, Enum):
    UNEVALUATED = "unevaluated"
    SATISFIED = "satisfied"
    UNSATISFIED = "unsatisfied"
    REPAIRED = "repaired"       # run() succeeded, verification deferred to next pass
    FAILED = "failed"
    BLOCKED = "blocked"


class EvaluationResult(BaseModel):
    """
    Outcome of one evaluate() call.

    An evaluation that raised is reported as unsatisfied with `error` set,
    so it stays distinguishable from a clean unsatisfied result.
    """

    task_id: str
    satisfied: bool
    error: Optional[str] = None

    @property
    def needs_repair(self) -> bool:
        return not self.satisfied


class TaskOutcome(BaseModel):
    """What happened to one task during one pass."""

    task_id: str
    title: str
    state: TaskState
    evaluation_error: Optional[str] = None
    error: Optional[str] = None


class PassReport(BaseModel):
    """Summary of one full pass over the task catalog."""

    id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    outcomes: List[TaskOutcome] = []

    @property
    def failed_task_ids(self) -> List[str]:
        return [o.task_id for o in self.outcomes if o.state == TaskState.FAILED]

    def count(self, state: TaskState) -> int:
        return sum(1 for o in self.outcomes if o.state == state)


class TaskBuildResult(BaseModel):
    """Either a constructed task or the reason it could not be built."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    source: str
    task: Optional[Any] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.task is not None and self.error is None
