"""Immutable records served by the searchers.

Records are value objects: once built they are never mutated, so search
results can hand them out directly without copying.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class Declaration(_Record):
    """Source location of an option; ``url`` is set when the location is browsable."""

    text: str
    url: str | None = None


class OptionRecord(_Record):
    """A NixOS option with its rendered documentation fields."""

    name: str
    declarations: tuple[Declaration, ...] = ()
    description: str = ""
    default: str = ""
    example: str = ""
    option_type: str = ""
    read_only: bool = False


class InformativeLicense(_Record):
    free: bool | None = None
    full_name: str | None = Field(default=None, validation_alias=AliasChoices("full_name", "fullName"))
    redistributable: bool | None = None
    short_name: str | None = Field(default=None, validation_alias=AliasChoices("short_name", "shortName"))
    spdx_id: str | None = Field(default=None, validation_alias=AliasChoices("spdx_id", "spdxId"))
    url: str | None = None

    def label(self) -> str:
        return self.full_name or self.short_name or self.url or "unknown"


# nixpkgs licenses are either a plain string or an attribute set
License = str | InformativeLicense


def _as_tuple(value: Any) -> Any:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return (value,)


class PackageRecord(_Record):
    """A package from the channel's nixpkgs, keyed by ``attribute_name``."""

    attribute_name: str
    name: str
    default_output: str = "out"
    description: str | None = None
    long_description: str | None = Field(
        default=None,
        validation_alias=AliasChoices("long_description", "longDescription"),
    )
    license: tuple[License, ...] = ()
    outputs: tuple[str, ...] = ()
    version: str | None = None
    homepage: tuple[str, ...] = ()

    @field_validator("license", "homepage", "outputs", mode="before")
    @classmethod
    def _normalize_plurality(cls, value: Any) -> Any:
        return _as_tuple(value)

    def license_labels(self) -> list[str]:
        """Return de-duplicated human readable license names in declaration order."""
        labels: list[str] = []
        for entry in self.license:
            label = entry if isinstance(entry, str) else entry.label()
            if label not in labels:
                labels.append(label)
        return labels
