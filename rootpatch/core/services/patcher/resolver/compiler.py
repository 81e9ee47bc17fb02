"""
L2 Resolver — Operation compiler.

Turns a request plus a resolved ``VolumeContext`` into the ordered,
immutable step sequence the privileged executor runs.  Pure given its
inputs: the only host fact it consults (does a destination exist?)
comes from an injected probe, and nothing is executed here.

Step skeletons:

    install          resolve → [merge KDK] → per-file → per-merge →
                     [rebuild] → rebuild → reseal → [unmount]
    merge_kdk        resolve → merge KDK tree → rebuild → reseal →
                     verify → [unmount]
    rebuild_cache    resolve → rebuild → [unmount]
    create_snapshot  resolve → reseal → [unmount]
    restore_snapshot resolve → restore last sealed → [unmount]

Mount-point housekeeping (release a stale mount, create the private
mount directory, create the backup directory) is emitted as ``prepare``
steps.  Unmount only exists on the private-mount path.
"""

from __future__ import annotations

import logging
import os
import posixpath
from pathlib import Path
from typing import Callable

from rootpatch.core.errors import PreconditionError
from rootpatch.core.models.request import (
    InstallRequest,
    MergeRequest,
    OperationKind,
    OperationRequest,
)
from rootpatch.core.models.step import (
    CompiledStep,
    PathGuard,
    ShellCommand,
    StepKind,
    StepSequence,
)
from rootpatch.core.models.volume import VolumeContext
from rootpatch.core.observability.event_log import EventLog
from rootpatch.core.services.patcher.data import constants as C
from rootpatch.core.services.patcher.domain.conflict_policy import (
    ConflictAction,
    decide,
    decide_merge,
    destination_dir_for,
    join_mount,
)
from rootpatch.core.services.patcher.domain.ordering import ensure_ordering

logger = logging.getLogger(__name__)

DestinationProbe = Callable[[str, VolumeContext], bool]
"""Takes a mount-relative path (``/System/Library/Extensions/Foo.kext``)
and the volume the operation writes to."""


def volume_probe(relative_path: str, volume: VolumeContext) -> bool:
    """Check a mount-relative path on the volume being written.

    Reads under ``volume.mount_path`` when that view is available: the
    legacy path (mount path is ``/``) or a private mount that is still
    attached.  Otherwise the private mount only appears once the
    privileged script runs, and the live root is the best compile-time
    view.  Backup and install steps carry run-time guards, so a stale
    answer here can skip a write but never overwrites without a backup.
    """
    if not volume.uses_private_mount or volume.stale_mount_attached:
        return os.path.exists(join_mount(volume.mount_path, relative_path))
    return os.path.exists(join_mount("/", relative_path))


def relative_to_mount(path: str, mount_path: str) -> str:
    """``/System/Volumes/Update/mnt1/System/X`` → ``/System/X``."""
    base = mount_path.rstrip("/")
    if base and path.startswith(base + "/"):
        return path[len(base):]
    return path


# ═══════════════════════════════════════════════════════════════════════
#  Step builders
# ═══════════════════════════════════════════════════════════════════════


def _step(
    kind: StepKind,
    label: str,
    program: str,
    *args: str,
    target: str | None = None,
    continue_on_failure: bool = False,
    guard: PathGuard | None = None,
) -> CompiledStep:
    return CompiledStep(
        kind=kind,
        label=label,
        command=ShellCommand(program=program, args=tuple(args)),
        target=target,
        continue_on_failure=continue_on_failure,
        guard=guard,
    )


def resolve_steps(volume: VolumeContext, mount_point: str = C.PRIVATE_MOUNT_POINT) -> list[CompiledStep]:
    """Housekeeping plus the single mount step for ``volume``."""
    steps: list[CompiledStep] = []
    if volume.stale_mount_attached:
        steps.append(_step(
            StepKind.PREPARE, "Release stale mount", C.UMOUNT, mount_point,
        ))

    if volume.uses_private_mount:
        steps.append(_step(
            StepKind.PREPARE, "Create mount point", C.MKDIR, "-p", volume.mount_path,
        ))
        steps.append(_step(
            StepKind.RESOLVE,
            f"Mount {volume.resolved_identifier} at {volume.mount_path}",
            C.MOUNT, "-o", "nobrowse", "-t", "apfs", volume.device_path, volume.mount_path,
            target=volume.mount_path,
        ))
    else:
        steps.append(_step(
            StepKind.RESOLVE, "Remount / read-write", C.MOUNT, "-uw", C.LEGACY_MOUNT_PATH,
            target=C.LEGACY_MOUNT_PATH,
        ))
    return steps


def rebuild_cache_step(volume: VolumeContext, label: str = "Rebuild kernel cache") -> CompiledStep:
    return _step(
        StepKind.REBUILD_CACHE, label,
        C.KMUTIL, "create", "--volume-root", volume.mount_path,
        "--update-all", "--allow-missing-kdk",
        target=volume.mount_path,
    )


def reseal_step(volume: VolumeContext) -> CompiledStep:
    return _step(
        StepKind.RESEAL, "Reseal boot snapshot",
        C.BLESS, "--mount", volume.mount_path, "--bootefi", "--create-snapshot",
        target=volume.mount_path,
    )


def restore_snapshot_step(volume: VolumeContext) -> CompiledStep:
    return _step(
        StepKind.RESTORE_SNAPSHOT, "Restore last sealed snapshot",
        C.BLESS, "--mount", volume.mount_path, "--bootefi", "--last-sealed-snapshot",
        target=volume.mount_path,
    )


def unmount_steps(volume: VolumeContext) -> list[CompiledStep]:
    if not volume.uses_private_mount:
        return []
    return [_step(StepKind.UNMOUNT, "Unmount root volume", C.UMOUNT, volume.mount_path)]


def kdk_merge_step(kdk_path: str, volume: VolumeContext, *, full_merge: bool) -> CompiledStep:
    """rsync the KDK's /System tree (or only its Extensions) onto the volume."""
    subtree = C.KDK_SYSTEM_SUBTREE if full_merge else C.KDK_EXTENSIONS_SUBTREE
    source = kdk_path.rstrip("/") + "/" + subtree + "/"
    destination = join_mount(volume.mount_path, "/" + subtree)
    label = "Merge KDK system tree" if full_merge else "Merge KDK extensions"
    return _step(
        StepKind.MERGE_KDK, label, C.RSYNC, *C.RSYNC_FLAGS, source, destination,
        target=destination,
    )


# ═══════════════════════════════════════════════════════════════════════
#  Compiler
# ═══════════════════════════════════════════════════════════════════════


class OperationCompiler:
    """Compile requests into ``StepSequence`` values.

    Args:
        backup_dir: Where BackupThenInstall copies existing payloads.
        probe: Existence check for mount-relative destination paths.
        mount_point: Private mount point (for releasing stale mounts).
        event_log: Receives per-file decision events.
    """

    def __init__(
        self,
        *,
        backup_dir: Path | str,
        probe: DestinationProbe = volume_probe,
        mount_point: str = C.PRIVATE_MOUNT_POINT,
        event_log: EventLog | None = None,
    ) -> None:
        self._backup_dir = str(backup_dir)
        self._probe = probe
        self._mount_point = mount_point
        self._events = event_log

    def compile(self, request: OperationRequest, volume: VolumeContext) -> StepSequence:
        """Dispatch on the request kind."""
        if isinstance(request, InstallRequest):
            sequence = self.compile_install(request, volume)
        elif isinstance(request, MergeRequest):
            sequence = self.compile_merge(request, volume)
        elif request.kind == OperationKind.REBUILD_CACHE:
            sequence = self.compile_rebuild_cache(volume)
        elif request.kind == OperationKind.CREATE_SNAPSHOT:
            sequence = self.compile_create_snapshot(volume)
        elif request.kind == OperationKind.RESTORE_SNAPSHOT:
            sequence = self.compile_restore_snapshot(volume)
        else:
            raise PreconditionError(f"Unknown operation: {request.kind}")

        ensure_ordering(sequence, volume)
        logger.debug("Compiled %s into %d steps", request.kind, len(sequence))
        return sequence

    # ── Install ─────────────────────────────────────────────────

    def compile_install(self, request: InstallRequest, volume: VolumeContext) -> StepSequence:
        request.validate_request()
        steps = resolve_steps(volume, self._mount_point)

        if request.merge_kdk and request.selected_kdk_path:
            self._log("starting_merge_and_install", request.selected_kdk_path)
            steps.append(kdk_merge_step(request.selected_kdk_path, volume, full_merge=False))

        backup_dir_ready = False
        for source in request.files:
            name = posixpath.basename(source.rstrip("/"))
            existing = posixpath.join(destination_dir_for(source, request, volume.mount_path), name)
            decision = decide(
                source,
                request,
                mount_path=volume.mount_path,
                destination_exists=self._probe(relative_to_mount(existing, volume.mount_path), volume),
            )
            self._log(decision.action.value, decision.file_name)

            if decision.action == ConflictAction.SKIP_EXISTING:
                continue

            # The probe can miss a payload written by an earlier, unrebooted
            # patch; the guards re-check the destination when the script runs.
            backup = decision.action == ConflictAction.BACKUP_THEN_INSTALL or (
                decision.action == ConflictAction.NEW_INSTALL and request.backup_existing
            )
            if backup:
                if not backup_dir_ready:
                    steps.append(_step(
                        StepKind.PREPARE, "Create backup directory",
                        C.MKDIR, "-p", self._backup_dir,
                    ))
                    backup_dir_ready = True
                steps.append(_step(
                    StepKind.BACKUP, f"Back up {decision.file_name}",
                    C.RSYNC, "-a", decision.destination_path, self._backup_dir.rstrip("/") + "/",
                    target=posixpath.join(self._backup_dir, decision.file_name),
                    guard=PathGuard(path=decision.destination_path, exists=True),
                ))

            replace = backup or decision.action == ConflictAction.OVERWRITE
            rsync_args = (*C.RSYNC_FLAGS, "--delete") if replace else C.RSYNC_FLAGS
            install_guard = None
            if not replace:
                install_guard = PathGuard(path=decision.destination_path, exists=False)
            steps.append(_step(
                StepKind.INSTALL, f"Install {decision.file_name}",
                C.RSYNC, *rsync_args, source.rstrip("/"), decision.destination_dir + "/",
                target=decision.destination_path,
                guard=install_guard,
            ))

        for op in request.merge_operations:
            decision = decide_merge(op.source, op.destination, mount_path=volume.mount_path)
            if not self._probe(relative_to_mount(decision.destination_path, volume.mount_path), volume):
                self._log("error_merge_destination_missing", decision.destination_path)
                logger.warning("Merge destination missing, skipping: %s", decision.destination_path)
                continue
            self._log("merge_directories", decision.file_name)
            steps.append(_step(
                StepKind.MERGE, f"Merge {decision.file_name}",
                C.RSYNC, *C.RSYNC_FLAGS, op.source.rstrip("/") + "/", decision.destination_path + "/",
                target=decision.destination_path,
                continue_on_failure=True,
            ))

        if request.rebuild_cache:
            steps.append(rebuild_cache_step(volume, "Rebuild kernel cache (requested)"))
        steps.append(rebuild_cache_step(volume))
        steps.append(reseal_step(volume))
        steps.extend(unmount_steps(volume))
        return StepSequence(tuple(steps))

    # ── Merge only ──────────────────────────────────────────────

    def compile_merge(self, request: MergeRequest, volume: VolumeContext) -> StepSequence:
        request.validate_request()
        steps = resolve_steps(volume, self._mount_point)
        steps.append(kdk_merge_step(request.kdk_path, volume, full_merge=request.full_merge))
        steps.append(rebuild_cache_step(volume))
        steps.append(reseal_step(volume))
        sentinel = join_mount(volume.mount_path, "/" + C.MERGE_SENTINEL)
        steps.append(_step(
            StepKind.VERIFY, "Verify KDK merge", C.TEST, "-f", sentinel,
        ))
        steps.extend(unmount_steps(volume))
        return StepSequence(tuple(steps))

    # ── Cache / snapshots ───────────────────────────────────────

    def compile_rebuild_cache(self, volume: VolumeContext) -> StepSequence:
        steps = resolve_steps(volume, self._mount_point)
        steps.append(rebuild_cache_step(volume))
        steps.extend(unmount_steps(volume))
        return StepSequence(tuple(steps))

    def compile_create_snapshot(self, volume: VolumeContext) -> StepSequence:
        steps = resolve_steps(volume, self._mount_point)
        steps.append(reseal_step(volume))
        steps.extend(unmount_steps(volume))
        return StepSequence(tuple(steps))

    def compile_restore_snapshot(self, volume: VolumeContext) -> StepSequence:
        steps = resolve_steps(volume, self._mount_point)
        steps.append(restore_snapshot_step(volume))
        steps.extend(unmount_steps(volume))
        return StepSequence(tuple(steps))

    # ── Internals ───────────────────────────────────────────────

    def _log(self, key: str, *params: str) -> None:
        if self._events is not None:
            self._events.append(key, *params)
