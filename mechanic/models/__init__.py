"""Mechanic data models."""

from mechanic.models.config import (
    MINIMUM_SLEEP_SECONDS,
    MechanicConfig,
    clean_sleep_seconds,
)
from mechanic.models.preference import Preference
from mechanic.models.task import (
    EvaluationResult,
    PassReport,
    TaskBuildResult,
    TaskOutcome,
    TaskState,
)

__all__ = [
    "EvaluationResult",
    "MINIMUM_SLEEP_SECONDS",
    "MechanicConfig",
    "PassReport",
    "Preference",
    "TaskBuildResult",
    "TaskOutcome",
    "TaskState",
    "clean_sleep_seconds",
]
