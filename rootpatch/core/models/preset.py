"""
Preset models — declarative bundles of file operations.

Presets are read-only once loaded.  The on-disk format (JSON or YAML)
is decoded by the preset loader; these models only describe the data
it yields.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ConflictResolution(StrEnum):
    """Per-file conflict policy declared by a preset."""

    OVERWRITE = "overwrite"
    BACKUP = "backup"
    SKIP = "skip"
    MERGE = "merge"


class PresetFile(BaseModel):
    """One payload entry of a preset."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source: str                                     # relative to the version directory
    destination: str = ""                           # mount-relative, used for merges
    conflict_resolution: ConflictResolution = Field(
        default=ConflictResolution.SKIP, alias="conflictResolution",
    )
    system_version: str = Field(alias="systemVersion")


class PresetDefinition(BaseModel):
    """A named, versioned preset."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    author: str = ""
    description: str = ""
    version: str = ""
    requires_kdk: bool = Field(default=False, alias="requiresKDK")
    files: tuple[PresetFile, ...] = ()
    rebuild_cache: bool = Field(default=False, alias="rebuildCache")
    create_snapshot: bool = Field(default=False, alias="createSnapshot")

    @property
    def system_versions(self) -> list[str]:
        """Distinct system versions referenced by this preset, sorted."""
        return sorted({f.system_version for f in self.files})

    def uses_policy(self, policy: ConflictResolution) -> bool:
        return any(f.conflict_resolution == policy for f in self.files)
