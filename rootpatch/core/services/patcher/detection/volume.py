"""
L3 Detection — root volume resolution.

Answers "which volume must privileged writes target, and where will
it be mounted?" from live host queries.  All queries are read-only and
run unprivileged; the mount itself is compiled into the privileged
script so the operator sees exactly one credential prompt.

Resolution order:
    1. Origin identifier of "/" from ``diskutil info -plist /``
    2. Sealed snapshot?  → re-resolve to the volume listed directly
       above the snapshot in ``diskutil list``
    3. Stale private mount attached?  (``mount`` listing)
    4. OS major version (``sw_vers``) picks private mount vs. legacy
       remount of "/" in place
"""

from __future__ import annotations

import logging
import plistlib
from xml.parsers.expat import ExpatError

from rootpatch.core.errors import ResolutionError
from rootpatch.core.models.volume import VolumeContext
from rootpatch.core.observability.event_log import EventLog
from rootpatch.core.services.patcher.data import constants as C
from rootpatch.core.services.patcher.execution.subprocess_runner import (
    HostRunner,
    combined_output,
    run_command,
)

logger = logging.getLogger(__name__)


def parse_device_info(raw: str) -> tuple[str, bool]:
    """Extract ``(DeviceIdentifier, is_snapshot)`` from diskutil plist output.

    Raises:
        ResolutionError: If the output is not a plist or lacks the identifier.
    """
    try:
        info = plistlib.loads(raw.encode("utf-8"))
    except (plistlib.InvalidFileException, ExpatError, ValueError) as e:
        raise ResolutionError(f"Cannot parse root volume info: {e}", diagnostic=raw) from e

    if not isinstance(info, dict):
        raise ResolutionError("Unexpected root volume info format", diagnostic=raw)

    identifier = info.get(C.DEVICE_IDENTIFIER_KEY)
    if not identifier or not isinstance(identifier, str):
        raise ResolutionError("Root volume has no device identifier", diagnostic=raw)

    return identifier, bool(info.get(C.SNAPSHOT_PLIST_KEY))


def parse_backing_volume(listing: str, snapshot_identifier: str) -> str:
    """Find the volume listed directly above a snapshot in ``diskutil list``.

    The identifier is the last field of that line.

    Raises:
        ResolutionError: If the snapshot is absent or listed first.
    """
    lines = [line for line in listing.splitlines() if line.strip()]
    for i, line in enumerate(lines):
        if snapshot_identifier in line.split():
            if i == 0:
                break
            fields = lines[i - 1].split()
            if fields:
                return fields[-1]
            break
    raise ResolutionError(
        f"Cannot find the volume backing snapshot {snapshot_identifier}",
        diagnostic=listing,
    )


def parse_major_version(product_version: str) -> int:
    """``"14.2.1"`` → 14."""
    head = product_version.strip().split(".", 1)[0]
    try:
        return int(head)
    except ValueError as e:
        raise ResolutionError(
            f"Cannot parse OS version {product_version.strip()!r}",
            diagnostic=product_version,
        ) from e


class VolumeResolver:
    """Build a fresh ``VolumeContext`` from the live host.

    Invoked once per operation, immediately before compiling, so results
    reflect current state.  Any failed query aborts resolution with the
    raw diagnostic text; volume state is not assumed transient, so there
    is no retry.
    """

    def __init__(
        self,
        runner: HostRunner = run_command,
        *,
        mount_point: str = C.PRIVATE_MOUNT_POINT,
        sealed_os_threshold: int = C.SEALED_OS_THRESHOLD,
        event_log: EventLog | None = None,
    ) -> None:
        self._run = runner
        self._mount_point = mount_point
        self._threshold = sealed_os_threshold
        self._events = event_log

    def resolve(self) -> VolumeContext:
        self._log("locating_root_vol")

        info_raw = self._query([C.DISKUTIL, "info", "-plist", "/"], "Cannot query root volume")
        origin, sealed = parse_device_info(info_raw)
        self._log("origin_identifier", origin)

        resolved = origin
        if sealed:
            self._log("snapshot_detected")
            listing = self._query([C.DISKUTIL, "list"], "Cannot list volumes")
            resolved = parse_backing_volume(listing, origin)
        self._log("root_volume_identifier", resolved)

        mounts = self._query([C.MOUNT], "Cannot list mounts")
        stale = any(
            self._mount_point in line.split() for line in mounts.splitlines()
        )
        if stale:
            self._log("stale_mount_detected", self._mount_point)

        version_raw = self._query([C.SW_VERS, "-productVersion"], "Cannot read OS version")
        major = parse_major_version(version_raw)

        private = major >= self._threshold
        mount_path = self._mount_point if private else C.LEGACY_MOUNT_PATH
        self._log("sealed_system_detected" if private else "legacy_system_detected", str(major))
        self._log("mount_path", mount_path)

        context = VolumeContext(
            origin_identifier=origin,
            resolved_identifier=resolved,
            mount_path=mount_path,
            is_snapshot_sealed=sealed,
            os_major_version=major,
            uses_private_mount=private,
            stale_mount_attached=stale,
        )
        logger.info(
            "Resolved root volume %s (origin %s, macOS %d) → %s",
            resolved, origin, major, mount_path,
        )
        return context

    # ── Internals ───────────────────────────────────────────────

    def _query(self, cmd: list[str], message: str) -> str:
        result = self._run(cmd, timeout=60)
        if not result.get("ok"):
            diagnostic = combined_output(result)
            logger.warning("%s: %s", message, result.get("error", "unknown"))
            raise ResolutionError(message, diagnostic=diagnostic)
        return result.get("stdout", "")

    def _log(self, key: str, *params: str) -> None:
        if self._events is not None:
            self._events.append(key, *params)
