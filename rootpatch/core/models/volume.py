"""
VolumeContext — the resolved facts about the booted root volume.

Built fresh by the volume resolver for every operation and owned by
that operation only.  Never cached: host state can change between runs.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class VolumeContext(BaseModel):
    """Where privileged writes for one operation must land."""

    model_config = ConfigDict(frozen=True)

    origin_identifier: str          # device backing "/" as booted (may be a snapshot)
    resolved_identifier: str        # writable volume behind the sealed snapshot
    mount_path: str                 # where every subsequent step operates
    is_snapshot_sealed: bool = False
    os_major_version: int = 0

    uses_private_mount: bool = False       # False → legacy remount-in-place of "/"
    stale_mount_attached: bool = False     # transient mount left by a previous run

    @property
    def device_path(self) -> str:
        return f"/dev/{self.resolved_identifier}"

    def to_dict(self) -> dict:
        data = self.model_dump()
        data["device_path"] = self.device_path
        return data
