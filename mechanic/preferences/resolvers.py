"""Resolvers — compute the corrected value for a mismatched preference."""

import os
import re
from typing import Optional, Pattern, Union

from mechanic.models.preference import Preference


class Resolver:
    """Maps the observed value (None when absent) to the value to write."""

    def resolve(self, subject: Optional[str]) -> Optional[str]:
        raise NotImplementedError

    def __call__(self, subject: Optional[str]) -> Optional[str]:
        return self.resolve(subject)


class SimpleResolver(Resolver):
    """Overwrites with the declared value."""

    def __init__(self, pref: Preference):
        self.pref = pref

    def resolve(self, subject: Optional[str]) -> Optional[str]:
        return self.pref.value


class ListAppendResolver(Resolver):
    """
    Appends the declared value to the observed one, separated by `delim`.
    Not idempotent: only apply when the matcher reports a mismatch.
    """

    def __init__(self, delim: str, pref: Preference):
        self.delim = delim
        self.pref = pref

    def resolve(self, subject: Optional[str]) -> Optional[str]:
        prefix = "" if subject is None else subject + self.delim
        return prefix + self.pref.value


class PathAppendResolver(ListAppendResolver):
    """ListAppendResolver joined with the platform path separator."""

    def __init__(self, pref: Preference):
        super().__init__(os.pathsep, pref)


class StringReplaceResolver(Resolver):
    """Regex substitution on the observed value. Absent values stay absent."""

    def __init__(self, regex: Union[str, Pattern], replace: str):
        self.regex = re.compile(regex) if isinstance(regex, str) else regex
        self.replace = replace

    def resolve(self, subject: Optional[str]) -> Optional[str]:
        if subject is None:
            return None
        return self.regex.sub(self.replace, subject)
