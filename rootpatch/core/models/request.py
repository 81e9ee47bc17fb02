"""
Operation requests — what the operator asked for.

Every request type maps to exactly one ``OperationKind``.  Requests are
validated with ``validate_request()`` before any volume is resolved or
any step is compiled; violations raise ``PreconditionError``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import ClassVar

from pydantic import BaseModel, Field

from rootpatch.core.errors import PreconditionError


class OperationKind(StrEnum):
    """The privileged operations the orchestrator knows how to compile."""

    INSTALL = "install"
    MERGE_KDK = "merge_kdk"
    REBUILD_CACHE = "rebuild_cache"
    CREATE_SNAPSHOT = "create_snapshot"
    RESTORE_SNAPSHOT = "restore_snapshot"

    @property
    def requires_restart(self) -> bool:
        """Whether a successful run of this kind touched the boot volume."""
        return self in _BOOT_VOLUME_KINDS


_BOOT_VOLUME_KINDS = frozenset({
    OperationKind.INSTALL,
    OperationKind.MERGE_KDK,
    OperationKind.REBUILD_CACHE,
    OperationKind.CREATE_SNAPSHOT,
    OperationKind.RESTORE_SNAPSHOT,
})


class MergeOperation(BaseModel):
    """A directory merged non-destructively into the mounted volume."""

    source: str
    destination: str               # relative to the mount path, e.g. /System/Library/Extensions


class OperationRequest(BaseModel):
    """Base for all requests."""

    kind: ClassVar[OperationKind]

    def validate_request(self) -> None:
        """Raise ``PreconditionError`` if the request is not meaningful."""


class InstallRequest(OperationRequest):
    """Install bundles (and optionally merge a KDK) into the root volume."""

    kind: ClassVar[OperationKind] = OperationKind.INSTALL

    files: list[str] = Field(default_factory=list)
    merge_operations: list[MergeOperation] = Field(default_factory=list)

    force_overwrite: bool = False
    backup_existing: bool = False
    rebuild_cache: bool = False
    install_to_legacy_extensions_dir: bool = False
    install_to_private_frameworks: bool = False

    selected_kdk_path: str | None = None
    merge_kdk: bool = False

    preset_name: str | None = None     # provenance when expanded from a preset

    def validate_request(self) -> None:
        if not self.files and not self.merge_operations:
            raise PreconditionError(
                "Nothing to install: no files and no merge operations selected.",
                key="error_not_selected_bundle",
            )
        if self.merge_kdk and not self.selected_kdk_path:
            raise PreconditionError(
                "KDK merge requested but no KDK is selected.",
                key="error_not_selected_kdk",
            )


class MergeRequest(OperationRequest):
    """Merge a Kernel Debug Kit into the root volume."""

    kind: ClassVar[OperationKind] = OperationKind.MERGE_KDK

    kdk_path: str = ""
    full_merge: bool = False       # whole /System tree vs. Extensions only

    def validate_request(self) -> None:
        if not self.kdk_path:
            raise PreconditionError(
                "No KDK selected for merge.",
                key="error_not_selected_kdk",
            )


class RebuildCacheRequest(OperationRequest):
    kind: ClassVar[OperationKind] = OperationKind.REBUILD_CACHE


class CreateSnapshotRequest(OperationRequest):
    kind: ClassVar[OperationKind] = OperationKind.CREATE_SNAPSHOT


class RestoreSnapshotRequest(OperationRequest):
    kind: ClassVar[OperationKind] = OperationKind.RESTORE_SNAPSHOT


def request_for_kind(kind: OperationKind) -> OperationRequest:
    """Build the parameterless request for a kind.

    Only valid for kinds that carry no parameters.
    """
    simple: dict[OperationKind, type[OperationRequest]] = {
        OperationKind.REBUILD_CACHE: RebuildCacheRequest,
        OperationKind.CREATE_SNAPSHOT: CreateSnapshotRequest,
        OperationKind.RESTORE_SNAPSHOT: RestoreSnapshotRequest,
    }
    if kind not in simple:
        raise PreconditionError(f"Operation '{kind}' needs parameters")
    return simple[kind]()
