"""
Task catalog — discovers task files and builds tasks from them.

Each *.epf file in a task source becomes one task. Its "# @task_type"
header picks the kind: LASTMOD (default) imports the whole file when it
changes, RECONCILING keeps each listed preference at its value.
"""

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Union

from mechanic.epf.parser import decode_lines, parse_metadata
from mechanic.models.task import TaskBuildResult
from mechanic.preferences.reconciler import PreferenceParseError
from mechanic.storage.preferences import PreferenceStore
from mechanic.storage.settings import SettingsStore
from mechanic.tasks.base import TaskConstructionError
from mechanic.tasks.lastmod import LastModifiedPreferencesFileTask
from mechanic.tasks.reconciling import ReconcilingPreferencesTask
from mechanic.tasks.reference import FileTaskReference, TaskReference

log = logging.getLogger(__name__)

TASK_FILE_PATTERN = "*.epf"
TASK_TYPE_LASTMOD = "LASTMOD"
TASK_TYPE_RECONCILING = "RECONCILING"


class SourceFailureRegistry:
    """
    Sources that failed to initialize, so each failure is logged once.
    Shared between reload triggers; all access goes through a lock.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._sources: Set[str] = set()

    def record_failure(self, source: str) -> bool:
        """Returns True if this is a new failure."""
        with self._lock:
            if source in self._sources:
                return False
            self._sources.add(source)
            return True

    def clear(self, source: str) -> None:
        with self._lock:
            self._sources.discard(source)

    def reset(self) -> None:
        with self._lock:
            self._sources.clear()

    def __contains__(self, source: str) -> bool:
        with self._lock:
            return source in self._sources

    def snapshot(self) -> List[str]:
        with self._lock:
            return sorted(self._sources)


class DirectoryTaskSource:
    """A directory containing task files."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    @property
    def source(self) -> str:
        return str(self.directory)

    def initialize(self) -> Optional[str]:
        """Returns a problem description, or None when the source is usable."""
        if not self.directory.exists():
            return f"Task source {self.directory} does not exist"
        if not self.directory.is_dir():
            return f"Task source {self.directory} is not a directory"
        return None

    def references(self) -> List[TaskReference]:
        return [
            FileTaskReference(p)
            for p in sorted(self.directory.glob(TASK_FILE_PATTERN))
            if p.is_file()
        ]


def build_task(
    ref: TaskReference,
    store: PreferenceStore,
    settings: SettingsStore,
    use_md5: Union[bool, Callable[[], bool]] = False,
    short_circuit: Union[bool, Callable[[], bool]] = False,
    installed_versions: Optional[Dict[str, str]] = None,
) -> TaskBuildResult:
    """Build the task declared by `ref`. Failures are returned, not raised."""
    try:
        metadata = parse_metadata(decode_lines(ref.read_bytes()))
        task_type = metadata.get("task_type", TASK_TYPE_LASTMOD).upper()

        if task_type == TASK_TYPE_RECONCILING:
            task = ReconcilingPreferencesTask(ref, store, short_circuit=short_circuit)
        elif task_type == TASK_TYPE_LASTMOD:
            task = LastModifiedPreferencesFileTask(
                ref,
                store,
                settings,
                use_md5=use_md5,
                installed_versions=installed_versions,
            )
            task.load_metadata()
        else:
            raise TaskConstructionError(f"Unknown task type '{task_type}'")
    except (OSError, PreferenceParseError, TaskConstructionError) as e:
        log.error("Couldn't build task from %s: %s", ref.path, e)
        return TaskBuildResult(source=ref.path, error=str(e))

    return TaskBuildResult(source=ref.path, task=task)
