"""
Reconcilers — bind one declared Preference to a Matcher and a Resolver
against a live PreferenceStore.

Behavioral Contract:
- is_reconciled() only reads (and logs a mismatch); safe to call any number of times
- reconcile() writes the resolved value and flushes; flush failures propagate
- Callers reconcile only when is_reconciled() is False, otherwise additive
  resolvers would append the same entry again
"""

import logging
from typing import Optional

from mechanic.models.preference import Preference
from mechanic.preferences.matchers import EqualsMatcher, Matcher
from mechanic.preferences.resolvers import Resolver, SimpleResolver
from mechanic.storage.preferences import PreferenceStore

log = logging.getLogger(__name__)


class PreferenceParseError(ValueError):
    """Raised when an exported preference line cannot be parsed."""
    pass


def parse_preference(pref_id: str, value: str) -> Preference:
    """
    Parse an exported preference: `pref_id` is "<path>/<key>", split on the
    last slash.
    """
    if pref_id is None:
        raise PreferenceParseError("'id' cannot be None.")
    if not pref_id:
        raise PreferenceParseError("'id' cannot be empty string.")
    if value is None:
        raise PreferenceParseError("'value' cannot be None.")
    if not value:
        raise PreferenceParseError("'value' cannot be empty string.")

    sli = pref_id.rfind("/")
    if sli == -1:
        raise PreferenceParseError(
            "'pref' must contain a slash in the identifier portion "
            f"of the preference. Bad val: '{pref_id}'"
        )
    if len(pref_id) <= sli + 1:
        raise PreferenceParseError(
            "'pref' must contain a name after slash in the identifier "
            f"portion of the preference. Bad val: '{pref_id}'"
        )
    path = pref_id[:sli]
    if not path:
        raise PreferenceParseError(
            f"'pref' must contain a node path before the key. Bad val: '{pref_id}'"
        )
    return Preference(path=path, key=pref_id[sli + 1:], value=value)


def parse_preference_line(line: str) -> Preference:
    """Parse a "<path>/<key>=<value>" line."""
    pref_id, sep, value = line.partition("=")
    if not sep:
        raise PreferenceParseError(f"Missing '=' in preference line: '{line}'")
    return parse_preference(pref_id, value)


class Reconciler:
    """Reconciles one declared preference with the stored value."""

    def is_reconciled(self) -> bool:
        raise NotImplementedError

    def reconcile(self) -> None:
        raise NotImplementedError


class CompositeReconciler(Reconciler):
    """Reconciler composed from a Preference, a Matcher and a Resolver."""

    def __init__(
        self,
        store: PreferenceStore,
        pref: Preference,
        matcher: Matcher,
        resolver: Resolver,
    ):
        self.store = store
        self.pref = pref
        self.matcher = matcher
        self.resolver = resolver

    def _current(self) -> Optional[str]:
        return self.store.get(self.pref.path, self.pref.key)

    def is_reconciled(self) -> bool:
        value = self._current()
        result = self.matcher.matches(value)
        if not result:
            log.info(
                "Value for key '%s' is not good. Expected %s but was %s",
                self.pref.key, self.pref.value, value,
            )
        return result

    def reconcile(self) -> None:
        resolved = self.resolver.resolve(self._current())
        if resolved is None:
            # Resolvers such as StringReplaceResolver leave absent values absent.
            log.info("Nothing to write for key '%s' at %s", self.pref.key, self.pref.path)
            return
        self.store.put(self.pref.path, self.pref.key, resolved)
        self.store.flush()

    def __repr__(self) -> str:
        return (
            f"CompositeReconciler({self.pref.id!r}, "
            f"{type(self.matcher).__name__}, {type(self.resolver).__name__})"
        )


def create_reconciler(
    store: PreferenceStore,
    pref: Preference,
    matcher: Optional[Matcher] = None,
    resolver: Optional[Resolver] = None,
) -> CompositeReconciler:
    """Defaults to exact matching with overwrite."""
    return CompositeReconciler(
        store,
        pref,
        matcher or EqualsMatcher(pref),
        resolver or SimpleResolver(pref),
    )
