"""
Settings model — everything configurable about a rootpatch install.

Loaded from rootpatch.yml by the config loader.  Every field has a
default matching the host layout, so an absent config file is valid.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from rootpatch.core.services.patcher.data import constants as C


class ProgressSettings(BaseModel):
    """Liveness heartbeat tuning."""

    interval_s: float = Field(default=C.PROGRESS_INTERVAL_S, gt=0)
    step: float = Field(default=C.PROGRESS_STEP, gt=0, le=1)
    cap: float = Field(default=C.PROGRESS_CAP, gt=0, lt=1)
    grace_s: float = Field(default=C.PROGRESS_GRACE_S, ge=0)


class PrivilegeSettings(BaseModel):
    """How elevation is obtained."""

    mode: Literal["osascript", "sudo", "mock"] = "osascript"


class Settings(BaseModel):
    """Root configuration — serialized as rootpatch.yml."""

    tool_name: str = C.TOOL_NAME

    kdk_dir: str = C.KDK_DIR
    presets_dir: str = f"~/Library/Application Support/{C.TOOL_NAME}/Presets"
    preset_files_dir: str = f"~/Library/Application Support/{C.TOOL_NAME}/PresetFiles"
    backup_dir: str = ""                    # empty → ~/Desktop/<tool_name>Bak
    audit_path: str = f"~/.{C.TOOL_NAME}/audit.ndjson"

    mount_point: str = C.PRIVATE_MOUNT_POINT
    sealed_os_threshold: int = C.SEALED_OS_THRESHOLD

    event_log_capacity: int = Field(default=C.EVENT_LOG_CAPACITY, ge=1)
    progress: ProgressSettings = Field(default_factory=ProgressSettings)
    privilege: PrivilegeSettings = Field(default_factory=PrivilegeSettings)

    # ── Resolved paths ───────────────────────────────────────────

    @property
    def backup_path(self) -> Path:
        if self.backup_dir:
            return Path(self.backup_dir).expanduser()
        return Path.home() / "Desktop" / f"{self.tool_name}Bak"

    @property
    def kdk_path(self) -> Path:
        return Path(self.kdk_dir).expanduser()

    @property
    def presets_path(self) -> Path:
        return Path(self.presets_dir).expanduser()

    @property
    def preset_files_path(self) -> Path:
        return Path(self.preset_files_dir).expanduser()

    @property
    def audit_file(self) -> Path:
        return Path(self.audit_path).expanduser()
