"""Matchers — decide whether an observed preference value is correct."""

from typing import Optional

from mechanic.models.preference import Preference


class Matcher:
    """Predicate over an observed value. The value is None when the key is absent."""

    def matches(self, subject: Optional[str]) -> bool:
        raise NotImplementedError

    def __call__(self, subject: Optional[str]) -> bool:
        return self.matches(subject)


class EqualsMatcher(Matcher):
    """Matches only the preference's declared value, exactly."""

    def __init__(self, pref: Preference):
        self.pref = pref

    def matches(self, subject: Optional[str]) -> bool:
        return subject is not None and subject == self.pref.value


class ContainsMatcher(Matcher):
    """Matches when the observed value contains `value`."""

    def __init__(self, value: str):
        self.value = value

    def matches(self, subject: Optional[str]) -> bool:
        return subject is not None and self.value in subject
