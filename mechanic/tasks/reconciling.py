"""
Reconciling tasks — keep individual preferences at their declared values.

A task holds one Reconciler per declared preference. evaluate() checks all
of them; run() repairs only the ones that are out of line, so additive
resolvers never append twice.
"""

import logging
from typing import Callable, List, Optional, Union

from mechanic.epf.parser import decode_lines, parse_metadata, parse_properties
from mechanic.models.preference import Preference
from mechanic.preferences.matchers import Matcher
from mechanic.preferences.reconciler import (
    Reconciler,
    create_reconciler,
    parse_preference,
)
from mechanic.preferences.resolvers import Resolver
from mechanic.storage.preferences import PreferenceStore
from mechanic.tasks.base import Task, TaskConstructionError, task_id_for
from mechanic.tasks.reference import TaskReference

log = logging.getLogger(__name__)


class PreferenceReconcilerTask(Task):
    """
    Base for tasks that reconcile values in a PreferenceStore.

    With `short_circuit` evaluation stops at the first unreconciled
    preference; by default every reconciler is checked so that each
    mismatch gets logged. It may be a callable so that the setting follows
    the live configuration.
    """

    def __init__(
        self,
        store: PreferenceStore,
        short_circuit: Union[bool, Callable[[], bool]] = False,
    ):
        self.store = store
        self._short_circuit = short_circuit
        self._reconcilers: List[Reconciler] = []

    @property
    def short_circuit(self) -> bool:
        if callable(self._short_circuit):
            return bool(self._short_circuit())
        return bool(self._short_circuit)

    @property
    def reconcilers(self) -> List[Reconciler]:
        return list(self._reconcilers)

    def add_reconciler(self, reconciler: Reconciler) -> None:
        self._reconcilers.append(reconciler)

    def create_reconciler(
        self,
        pref: Preference,
        matcher: Optional[Matcher] = None,
        resolver: Optional[Resolver] = None,
    ) -> Reconciler:
        return create_reconciler(self.store, pref, matcher, resolver)

    def create_reconciler_from_export(self, key: str, value: str) -> Reconciler:
        """Reconciler for one exported "<path>/<key>" entry."""
        return self.create_reconciler(parse_preference(key, value))

    def evaluate(self) -> bool:
        if self.short_circuit:
            return all(r.is_reconciled() for r in self._reconcilers)
        results = [r.is_reconciled() for r in self._reconcilers]
        return all(results)

    def run(self) -> None:
        for r in self._reconcilers:
            if not r.is_reconciled():
                r.reconcile()


class ReconcilingPreferencesTask(PreferenceReconcilerTask):
    """
    Reconciles every preference declared in an export file.

    Only entries whose key starts with "/" are preferences; version headers
    and other entries are ignored. Any read or parse failure aborts
    construction, so a task never runs with a partial reconciler list.
    """

    def __init__(
        self,
        ref: TaskReference,
        store: PreferenceStore,
        short_circuit: Union[bool, Callable[[], bool]] = False,
    ):
        super().__init__(store, short_circuit=short_circuit)
        self.ref = ref
        self._id = task_id_for(self, ref)
        self.title = f"Reconcile preferences from {ref.name}"
        self.description = ""
        self._init_reconcilers()

    @property
    def id(self) -> str:
        return self._id

    def _init_reconcilers(self) -> None:
        try:
            lines = decode_lines(self.ref.read_bytes())
        except OSError as e:
            raise TaskConstructionError(f"Couldn't read {self.ref.path}") from e

        metadata = parse_metadata(lines)
        self.title = metadata.get("title") or self.title
        self.description = metadata.get("description", self.description)

        try:
            for key, value in parse_properties(lines).items():
                if key.startswith("/"):
                    self.add_reconciler(self.create_reconciler_from_export(key, value))
        except ValueError as e:
            raise TaskConstructionError(
                f"Couldn't parse {self.ref.path}: {e}"
            ) from e

        log.debug("Built %d reconcilers from %s", len(self._reconcilers), self.ref.path)
