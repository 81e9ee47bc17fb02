"""
Shared test fixtures and configuration.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from rootpatch.core.config.settings import ProgressSettings, Settings
from rootpatch.core.models.volume import VolumeContext
from rootpatch.core.observability.event_log import EventLog
from rootpatch.core.services.patcher.data import constants as C
from tests.fakes import FakeHost


@pytest.fixture
def fake_host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def event_log() -> EventLog:
    return EventLog()


@pytest.fixture
def sealed_volume() -> VolumeContext:
    return VolumeContext(
        origin_identifier="disk3s1s1",
        resolved_identifier="disk3s1",
        mount_path=C.PRIVATE_MOUNT_POINT,
        is_snapshot_sealed=True,
        os_major_version=14,
        uses_private_mount=True,
    )


@pytest.fixture
def legacy_volume() -> VolumeContext:
    return VolumeContext(
        origin_identifier="disk1s5",
        resolved_identifier="disk1s5",
        mount_path="/",
        os_major_version=10,
        uses_private_mount=False,
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        kdk_dir=str(tmp_path / "KDKs"),
        presets_dir=str(tmp_path / "Presets"),
        preset_files_dir=str(tmp_path / "PresetFiles"),
        backup_dir=str(tmp_path / "backup"),
        audit_path=str(tmp_path / "audit.ndjson"),
        progress=ProgressSettings(interval_s=60, grace_s=0),
    )
