"""
Gated import task — imports a whole preference export, but only when the
file changed since the last successful import.

Change detection:
  Timestamp: satisfied iff a stored last-modified time exists and is
             >= the file's current one
  MD5:       satisfied iff a stored, non-empty fingerprint equals the
             file's current one
With no stored record the task is always unsatisfied.

Both records are written after every successful import, so switching
strategy does not trigger a re-import. A failed import leaves the previous
records untouched and the next pass tries again.
"""

import logging
from typing import Callable, Dict, Optional, Union

from mechanic.epf.export import ImportValidationError, apply_export, validate_export
from mechanic.epf.parser import decode_lines, parse_metadata, parse_properties
from mechanic.storage.preferences import BackingStoreError, PreferenceStore
from mechanic.storage.settings import SettingsStore, lastmod_key, md5_key
from mechanic.tasks.base import Task, TaskConstructionError, task_id_for
from mechanic.tasks.reference import TaskReference

log = logging.getLogger(__name__)


class TaskRunError(Exception):
    """Raised when a task's repair fails."""
    pass


class LastModifiedPreferencesFileTask(Task):
    """
    `use_md5` selects the change-detection strategy. It may be a callable so
    that the strategy follows the live configuration.
    """

    def __init__(
        self,
        ref: TaskReference,
        store: PreferenceStore,
        settings: SettingsStore,
        use_md5: Union[bool, Callable[[], bool]] = False,
        installed_versions: Optional[Dict[str, str]] = None,
    ):
        file = ref.as_file()
        if file is not None and not file.is_file():
            raise TaskConstructionError(f"{file} must be readable")

        self.ref = ref
        self.store = store
        self.settings = settings
        self._use_md5 = use_md5
        self.installed_versions = installed_versions
        self._id = task_id_for(self, ref)
        self.key = lastmod_key(self._id)
        self.md5_key = md5_key(self._id)
        self.title = f"Import preferences from {ref.name}"
        self.description = ""

    @property
    def id(self) -> str:
        return self._id

    @property
    def use_md5(self) -> bool:
        if callable(self._use_md5):
            return bool(self._use_md5())
        return bool(self._use_md5)

    def load_metadata(self) -> None:
        """Take title and description from the file's header comments."""
        metadata = parse_metadata(decode_lines(self.ref.read_bytes()))
        self.title = metadata.get("title") or self.title
        self.description = metadata.get("description", self.description)

    def evaluate(self) -> bool:
        if self.use_md5:
            return self._evaluate_by_md5()
        return self._evaluate_by_modification_date()

    def _evaluate_by_md5(self) -> bool:
        previous = self.settings.get_string(self.md5_key)
        current = self.ref.compute_md5()
        is_ok = bool(previous) and previous == current
        if not is_ok:
            log.info(
                "task must be repaired: %s. MD5 changed from '%s' to '%s'.",
                self.ref.name, previous, current,
            )
        return is_ok

    def _evaluate_by_modification_date(self) -> bool:
        # -1 marks "never imported"; 0 is a valid epoch timestamp.
        previous = self.settings.get_long(self.key, -1)
        current = self.ref.last_modified()
        is_ok = previous >= 0 and previous >= current
        if not is_ok:
            log.info(
                "task must be repaired: %s. Last modified changed from '%d' to '%d'.",
                self.ref.name, previous, current,
            )
        return is_ok

    def run(self) -> None:
        try:
            # Captured before the import so a concurrent edit is picked up next pass.
            lastmod = self.ref.last_modified()
            last_md5 = self.ref.compute_md5()

            entries = parse_properties(decode_lines(self.ref.read_bytes()))
            validation = validate_export(entries, self.installed_versions)
            for warning in validation.warnings:
                log.info("%s: %s", self.ref.name, warning)
            if not validation.ok:
                raise ImportValidationError(validation.problems)

            self.transfer(entries)

            self.settings.set_long(self.key, lastmod)
            self.settings.set_string(self.md5_key, last_md5)
        except (OSError, ValueError, ImportValidationError, BackingStoreError) as e:
            raise TaskRunError(f"Couldn't import preferences from {self.ref.path}: {e}") from e

    def transfer(self, entries: Dict[str, str]) -> None:
        """Merge the export into the store without removing other preferences."""
        written = apply_export(entries, self.store)
        log.info("Imported %d preferences from %s", written, self.ref.name)
