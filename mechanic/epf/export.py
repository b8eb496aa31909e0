"""
Preference export files — validation and filtered import.

An export declares its format version and the bundle versions it was taken
from, followed by "/<scope>/<node...>/<key>=<value>" entries:

    file_export_version=3.0
    @org.eclipse.ui.editors=3.4.0
    /instance/org.eclipse.ui.editors/tabWidth=2
"""

import logging
import re
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel

from mechanic.storage.preferences import PreferenceStore

log = logging.getLogger(__name__)

EXPORT_VERSION_KEY = "file_export_version"
SUPPORTED_EXPORT_VERSION = "3.0"
IMPORT_SCOPES = ("instance", "configuration")

_VERSION = re.compile(r"^\d+(\.\d+){0,2}(\.[\w-]+)?$")


class ImportValidationError(Exception):
    """Raised when an export file fails validation."""

    def __init__(self, problems: List[str]):
        self.problems = problems
        super().__init__("; ".join(problems))


class ExportValidation(BaseModel):
    """Result of validating an export file."""

    problems: List[str] = []
    warnings: List[str] = []

    @property
    def ok(self) -> bool:
        return not self.problems


def _major(version: str) -> str:
    return version.split(".", 1)[0]


def validate_export(
    entries: Dict[str, str],
    installed_versions: Optional[Dict[str, str]] = None,
) -> ExportValidation:
    """
    Structural and version check of a parsed export.

    `installed_versions` maps bundle names to the versions present in the
    host; a major-version mismatch with the export is a problem, a bundle
    missing from the host only a warning.
    """
    result = ExportValidation()

    version = entries.get(EXPORT_VERSION_KEY)
    if version is None:
        result.problems.append(f"Missing '{EXPORT_VERSION_KEY}' entry.")
    elif version != SUPPORTED_EXPORT_VERSION:
        result.problems.append(
            f"Unsupported export version '{version}', "
            f"expected '{SUPPORTED_EXPORT_VERSION}'."
        )

    for key, value in entries.items():
        if not key.startswith("@"):
            continue
        bundle = key[1:]
        if not bundle or not _VERSION.match(value):
            result.problems.append(f"Bad bundle version entry '{key}={value}'.")
            continue
        if installed_versions is None:
            continue
        installed = installed_versions.get(bundle)
        if installed is None:
            result.warnings.append(f"Bundle '{bundle}' is not installed.")
        elif _major(installed) != _major(value):
            result.problems.append(
                f"Bundle '{bundle}' was exported at {value} "
                f"but {installed} is installed."
            )

    return result


def split_export_key(key: str) -> Optional[Tuple[str, str, str]]:
    """
    Split "/scope/node/key" into (scope, node path, key).
    Returns None when the key does not name a preference.
    """
    if not key.startswith("/"):
        return None
    node_path, _, name = key.rpartition("/")
    parts = [p for p in node_path.split("/") if p]
    if not name or not parts:
        return None
    return parts[0], "/" + "/".join(parts), name


def apply_export(
    entries: Dict[str, str],
    store: PreferenceStore,
    scopes: Tuple[str, ...] = IMPORT_SCOPES,
) -> int:
    """
    Merge exported preferences into `store`.

    Only preferences in `scopes` are written, and only the keys present in
    the export; everything else already in the store is left alone. The
    store is flushed once at the end. Returns the number of values written.
    """
    written = 0
    for key, value in entries.items():
        parsed = split_export_key(key)
        if parsed is None:
            continue
        scope, node_path, name = parsed
        if scope not in scopes:
            log.info("Skipping preference outside imported scopes: %s", key)
            continue
        store.put(node_path, name, value)
        written += 1
    store.flush()
    return written
