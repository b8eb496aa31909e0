"""Preference — one desired (path, key, value) entry in the host preference store."""

from pydantic import BaseModel, ConfigDict, Field


class Preference(BaseModel):
    """
    Immutable preference declaration.

    `path` names a preference node (e.g. "/instance/org.eclipse.ui.editors"),
    `key` a field within it, `value` the desired string value (may be empty).
    """

    model_config = ConfigDict(frozen=True)

    path: str = Field(min_length=1)
    key: str = Field(min_length=1)
    value: str

    @property
    def id(self) -> str:
        return f"{self.path}/{self.key}"
