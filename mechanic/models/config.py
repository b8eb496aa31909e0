"""Mechanic configuration."""

from typing import List, Optional, Set

from pydantic import BaseModel

MINIMUM_SLEEP_SECONDS = 15


def clean_sleep_seconds(seconds: int) -> int:
    """Ensures the supplied sleep duration falls in an acceptable range."""
    return max(seconds, MINIMUM_SLEEP_SECONDS)


class MechanicConfig(BaseModel):
    """Configuration for the task service and its pass driver."""

    use_md5: bool = False                   # Fingerprint strategy instead of timestamps
    task_sources: List[str] = []            # Directories scanned for *.epf task files
    blocked_task_ids: Set[str] = set()
    heartbeat_interval_seconds: int = 60
    schedule: Optional[str] = None          # Cron expression, overrides the heartbeat
    verify_after_repair: bool = False
    short_circuit_evaluation: bool = False
    history_limit: int = 20

    @property
    def sleep_seconds(self) -> int:
        return clean_sleep_seconds(self.heartbeat_interval_seconds)
