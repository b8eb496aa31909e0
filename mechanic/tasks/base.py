"""
Task — the unit of auditing.

State machine per pass:
  UNEVALUATED → (SATISFIED | UNSATISFIED)
  UNSATISFIED → run() → (REPAIRED | FAILED)

Behavioral Contract:
- evaluate() never mutates persisted state
- run() is only called after evaluate() returned False in the same pass
- run() writes its bookkeeping only after the repair itself succeeded,
  so a failed run() is retried on the next pass
- id is stable across restarts: task class plus the audited resource
"""

from mechanic.tasks.reference import TaskReference


class Task:
    """Base class for all task kinds."""

    title: str = ""
    description: str = ""

    @property
    def id(self) -> str:
        raise NotImplementedError

    def evaluate(self) -> bool:
        """True when the environment already matches this task."""
        raise NotImplementedError

    def run(self) -> None:
        """Repair the environment so that evaluate() returns True."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}>"


def task_id_for(task: Task, ref: TaskReference) -> str:
    """`{module.Class}@{resource path}`: distinct per task class and resource."""
    cls = type(task)
    return f"{cls.__module__}.{cls.__qualname__}@{ref.path}"


class TaskConstructionError(Exception):
    """Raised when a task cannot be built from its source."""
    pass
