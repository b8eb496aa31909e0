"""
Mechanic Service — runs passes over the task catalog.

One pass evaluates every known task in turn and runs the ones that are not
satisfied. Tasks execute sequentially on the calling thread: repairs share
the preference store, and interleaved writes are not allowed.

Behavioral Contract:
- run() is only called when evaluate() returned False (or failed) in the same pass
- A failing task is reported as FAILED; the pass continues with the others
- Blocked task ids are skipped entirely
- Passes never overlap; evaluate_task() may be called concurrently for display
"""

import asyncio
import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional
from uuid import uuid4

from croniter import croniter

from mechanic.models.config import MechanicConfig
from mechanic.models.task import (
    EvaluationResult,
    PassReport,
    TaskBuildResult,
    TaskOutcome,
    TaskState,
)
from mechanic.storage.preferences import PreferenceStore
from mechanic.storage.settings import SettingsStore
from mechanic.tasks.base import Task
from mechanic.tasks.catalog import DirectoryTaskSource, SourceFailureRegistry, build_task

log = logging.getLogger(__name__)


class MechanicService:
    """Owns the task catalog and drives reconciliation passes."""

    def __init__(
        self,
        store: PreferenceStore,
        settings: SettingsStore,
        config: Optional[MechanicConfig] = None,
        failures: Optional[SourceFailureRegistry] = None,
        installed_versions: Optional[Dict[str, str]] = None,
    ):
        self.store = store
        self.settings = settings
        self.config = config or MechanicConfig()
        self.failures = failures if failures is not None else SourceFailureRegistry()
        self.installed_versions = installed_versions

        self._registered: Dict[str, Task] = {}     # Added by hand, survive reloads
        self._loaded: Dict[str, Task] = {}         # Discovered in task sources
        self._build_errors: List[TaskBuildResult] = []
        self._history: List[PassReport] = []
        self._pass_lock = threading.Lock()
        self._running = False

    @property
    def status(self) -> str:
        return "running" if self._running else "stopped"

    # --- Catalog ---

    def register_task(self, task: Task) -> None:
        """Add a task that is kept across load_tasks() reloads."""
        self._registered[task.id] = task

    def unregister_task(self, task_id: str) -> None:
        self._registered.pop(task_id, None)
        self._loaded.pop(task_id, None)

    def _catalog(self) -> Dict[str, Task]:
        return {**self._loaded, **self._registered}

    def get_tasks(self) -> List[Task]:
        return list(self._catalog().values())

    def get_task(self, task_id: str) -> Optional[Task]:
        return self._catalog().get(task_id)

    @property
    def build_errors(self) -> List[TaskBuildResult]:
        return list(self._build_errors)

    def load_tasks(self) -> List[TaskBuildResult]:
        """
        Rebuild the catalog from the configured task sources.
        Sources that fail to initialize are logged once until they recover.
        """
        results: List[TaskBuildResult] = []
        for source in self.config.task_sources:
            provider = DirectoryTaskSource(source)
            problem = provider.initialize()
            if problem:
                if self.failures.record_failure(source):
                    log.error(problem)
                continue
            self.failures.clear(source)

            for ref in provider.references():
                results.append(build_task(
                    ref,
                    self.store,
                    self.settings,
                    use_md5=lambda: self.config.use_md5,
                    short_circuit=lambda: self.config.short_circuit_evaluation,
                    installed_versions=self.installed_versions,
                ))

        self._loaded = {r.task.id: r.task for r in results if r.ok}
        self._build_errors = [r for r in results if not r.ok]
        log.info(
            "Loaded %d tasks (%d failed to build)",
            len(self._loaded), len(self._build_errors),
        )
        return results

    # --- Blocking ---

    def is_blocked(self, task_id: str) -> bool:
        return task_id in self.config.blocked_task_ids

    def block_task(self, task_id: str) -> None:
        self.config.blocked_task_ids.add(task_id)

    def unblock_task(self, task_id: str) -> None:
        self.config.blocked_task_ids.discard(task_id)

    # --- Evaluation ---

    def evaluate_task(self, task: Task) -> EvaluationResult:
        """Read-only evaluation. Errors are reported, never raised."""
        try:
            return EvaluationResult(task_id=task.id, satisfied=task.evaluate())
        except Exception as e:
            log.exception("Evaluation of %s failed", task.id)
            return EvaluationResult(task_id=task.id, satisfied=False, error=str(e))

    def _process_task(self, task: Task) -> TaskOutcome:
        if self.is_blocked(task.id):
            return TaskOutcome(task_id=task.id, title=task.title, state=TaskState.BLOCKED)

        evaluation = self.evaluate_task(task)
        if evaluation.satisfied:
            return TaskOutcome(task_id=task.id, title=task.title, state=TaskState.SATISFIED)

        outcome = TaskOutcome(
            task_id=task.id,
            title=task.title,
            state=TaskState.UNSATISFIED,
            evaluation_error=evaluation.error,
        )
        try:
            task.run()
        except Exception as e:
            log.exception("Task %s failed", task.id)
            outcome.state = TaskState.FAILED
            outcome.error = str(e)
            return outcome

        outcome.state = TaskState.REPAIRED
        if self.config.verify_after_repair:
            verification = self.evaluate_task(task)
            if not verification.satisfied:
                outcome.state = TaskState.FAILED
                outcome.error = verification.error or "Task still unsatisfied after repair"
        return outcome

    def run_pass(self) -> PassReport:
        """Evaluate, and where needed repair, every task once."""
        with self._pass_lock:
            report = PassReport(id=f"pass_{uuid4().hex[:12]}", started_at=datetime.utcnow())
            for task in self.get_tasks():
                report.outcomes.append(self._process_task(task))
            report.finished_at = datetime.utcnow()
            self._history.append(report)
            del self._history[:-max(1, self.config.history_limit)]

        failed = report.failed_task_ids
        if failed:
            log.error("%d task(s) failed: %s", len(failed), ", ".join(failed))
        return report

    @property
    def history(self) -> List[PassReport]:
        return list(self._history)

    @property
    def last_report(self) -> Optional[PassReport]:
        return self._history[-1] if self._history else None

    # --- Driver ---

    def seconds_until_next_pass(self, current_time: Optional[datetime] = None) -> float:
        """Next cron fire when a schedule is configured, otherwise the heartbeat."""
        if current_time is None:
            current_time = datetime.utcnow()
        if self.config.schedule:
            try:
                next_fire = croniter(self.config.schedule, current_time).get_next(datetime)
                return max(0.0, (next_fire - current_time).total_seconds())
            except (ValueError, KeyError):
                log.error("Invalid schedule '%s', using heartbeat", self.config.schedule)
        return float(self.config.sleep_seconds)

    async def run_async(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Reload tasks and run passes until `stop_event` is set."""
        self._running = True
        if stop_event is None:
            stop_event = asyncio.Event()

        try:
            while not stop_event.is_set():
                self.load_tasks()
                self.run_pass()
                try:
                    await asyncio.wait_for(
                        stop_event.wait(),
                        timeout=self.seconds_until_next_pass(),
                    )
                except asyncio.TimeoutError:
                    continue
        finally:
            self._running = False
