"""
L1 Domain — Conflict resolution policy (pure).

Decides, per payload, what happens at its destination.  No I/O: the
caller supplies whether the destination already exists.

Rules, in priority order:
    1. force_overwrite                 → OVERWRITE
    2. destination missing             → NEW_INSTALL
    3. backup_existing                 → BACKUP_THEN_INSTALL
    4. otherwise                       → SKIP_EXISTING

Entries routed through ``merge_operations`` always resolve to
MERGE_DIRECTORIES, whatever the flags say.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from rootpatch.core.services.patcher.data import constants as C


class ConflictAction(StrEnum):
    OVERWRITE = "overwrite"
    NEW_INSTALL = "new_install"
    BACKUP_THEN_INSTALL = "backup_then_install"
    SKIP_EXISTING = "skip_existing"
    MERGE_DIRECTORIES = "merge_directories"

    @property
    def writes(self) -> bool:
        """Whether this decision produces an install write."""
        return self in (
            ConflictAction.OVERWRITE,
            ConflictAction.NEW_INSTALL,
            ConflictAction.BACKUP_THEN_INSTALL,
        )


class InstallFlags(Protocol):
    """The request flags the policy reads."""

    force_overwrite: bool
    backup_existing: bool
    install_to_legacy_extensions_dir: bool
    install_to_private_frameworks: bool


@dataclass(frozen=True)
class ConflictDecision:
    """Outcome of the policy for one payload."""

    action: ConflictAction
    file_name: str
    source: str
    destination_dir: str
    destination_path: str


def is_framework(source: str) -> bool:
    return posixpath.splitext(source.rstrip("/"))[1].lower() == C.FRAMEWORK_EXTENSION


def destination_dir_for(source: str, flags: InstallFlags, mount_path: str) -> str:
    """Route a payload to its destination directory under ``mount_path``.

    ``.framework`` payloads go to (Private)Frameworks; everything else
    to the legacy or system extensions directory.
    """
    if is_framework(source):
        relative = C.PRIVATE_FRAMEWORKS_DIR if flags.install_to_private_frameworks else C.FRAMEWORKS_DIR
    else:
        relative = C.LEGACY_EXTENSIONS_DIR if flags.install_to_legacy_extensions_dir else C.SYSTEM_EXTENSIONS_DIR
    return join_mount(mount_path, relative)


def join_mount(mount_path: str, relative: str) -> str:
    """Join a mount-relative path (``/System/...``) onto the mount path."""
    return posixpath.normpath(mount_path.rstrip("/") + "/" + relative.lstrip("/"))


def decide(
    source: str,
    flags: InstallFlags,
    *,
    mount_path: str,
    destination_exists: bool,
) -> ConflictDecision:
    """Apply the conflict rules to one payload."""
    file_name = posixpath.basename(source.rstrip("/"))
    dest_dir = destination_dir_for(source, flags, mount_path)
    dest_path = posixpath.join(dest_dir, file_name)

    if flags.force_overwrite:
        action = ConflictAction.OVERWRITE
    elif not destination_exists:
        action = ConflictAction.NEW_INSTALL
    elif flags.backup_existing:
        action = ConflictAction.BACKUP_THEN_INSTALL
    else:
        action = ConflictAction.SKIP_EXISTING

    return ConflictDecision(
        action=action,
        file_name=file_name,
        source=source,
        destination_dir=dest_dir,
        destination_path=dest_path,
    )


def decide_merge(source: str, destination: str, *, mount_path: str) -> ConflictDecision:
    """Merge-routed entries always merge."""
    dest_path = join_mount(mount_path, destination)
    return ConflictDecision(
        action=ConflictAction.MERGE_DIRECTORIES,
        file_name=posixpath.basename(source.rstrip("/")),
        source=source,
        destination_dir=dest_path,
        destination_path=dest_path,
    )
