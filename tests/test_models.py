"""
Tests for domain models — validation, serialization, error taxonomy.
"""

import pydantic
import pytest

from rootpatch.core.errors import (
    CompilationError,
    ExecutionError,
    OperationInProgressError,
    PreconditionError,
    RootPatchError,
)
from rootpatch.core.models import (
    CreateSnapshotRequest,
    InstallRequest,
    MergeOperation,
    MergeRequest,
    OperationKind,
    OperationOutcome,
    PresetDefinition,
    RebuildCacheRequest,
    RestoreSnapshotRequest,
    VolumeContext,
    request_for_kind,
)
from rootpatch.core.models.step import CompiledStep, PathGuard, ShellCommand, StepKind


class TestRequests:
    """Request validation."""

    def test_install_needs_payload(self):
        with pytest.raises(PreconditionError) as exc:
            InstallRequest().validate_request()
        assert exc.value.key == "error_not_selected_bundle"

    def test_install_with_merge_only_is_valid(self):
        req = InstallRequest(merge_operations=[MergeOperation(source="/p", destination="/System/Library")])
        req.validate_request()

    def test_install_kdk_merge_needs_kdk(self):
        with pytest.raises(PreconditionError) as exc:
            InstallRequest(files=["/p/A.kext"], merge_kdk=True).validate_request()
        assert exc.value.key == "error_not_selected_kdk"

    def test_merge_needs_kdk(self):
        with pytest.raises(PreconditionError):
            MergeRequest().validate_request()
        MergeRequest(kdk_path="/K.kdk").validate_request()

    def test_kinds(self):
        assert InstallRequest.kind == OperationKind.INSTALL
        assert MergeRequest.kind == OperationKind.MERGE_KDK
        assert RebuildCacheRequest().kind == OperationKind.REBUILD_CACHE

    def test_every_kind_requires_restart(self):
        assert all(kind.requires_restart for kind in OperationKind)

    def test_request_for_kind(self):
        assert isinstance(request_for_kind(OperationKind.CREATE_SNAPSHOT), CreateSnapshotRequest)
        assert isinstance(request_for_kind(OperationKind.RESTORE_SNAPSHOT), RestoreSnapshotRequest)
        with pytest.raises(PreconditionError):
            request_for_kind(OperationKind.INSTALL)


class TestVolumeContext:
    def test_device_path(self, sealed_volume):
        assert sealed_volume.device_path == "/dev/disk3s1"
        assert sealed_volume.to_dict()["device_path"] == "/dev/disk3s1"

    def test_frozen(self, sealed_volume):
        with pytest.raises(pydantic.ValidationError):
            sealed_volume.mount_path = "/"

    def test_defaults(self):
        ctx = VolumeContext(origin_identifier="disk1s5", resolved_identifier="disk1s5", mount_path="/")
        assert not ctx.uses_private_mount
        assert not ctx.stale_mount_attached


class TestSteps:
    def test_command_rendering(self):
        cmd = ShellCommand(program="rsync", args=("-a", "/My Files/A.kext", "/dst/"))
        assert cmd.argv == ["rsync", "-a", "/My Files/A.kext", "/dst/"]
        assert str(cmd) == "rsync -a '/My Files/A.kext' /dst/"

    def test_step_to_dict(self):
        step = CompiledStep(
            kind=StepKind.UNMOUNT,
            label="Unmount root volume",
            command=ShellCommand(program="umount", args=("/mnt",)),
        )
        assert step.to_dict() == {
            "kind": "unmount",
            "label": "Unmount root volume",
            "argv": ["umount", "/mnt"],
            "target": None,
            "continue_on_failure": False,
            "guard": None,
        }

    def test_guard_in_dict(self):
        step = CompiledStep(
            kind=StepKind.BACKUP,
            label="Back up A.kext",
            command=ShellCommand(program="rsync", args=("-a", "/mnt/A.kext", "/bak/")),
            guard=PathGuard(path="/mnt/A.kext"),
        )
        assert step.to_dict()["guard"] == {"path": "/mnt/A.kext", "exists": True}


class TestOutcome:
    def test_success(self):
        outcome = OperationOutcome(succeeded=True, requires_restart=True, kind=OperationKind.INSTALL)
        data = outcome.to_dict()
        assert data["status"] == "ok"
        assert data["kind"] == "install"
        outcome.raise_for_failure()

    def test_failure_raises_with_diagnostic(self):
        outcome = OperationOutcome(
            succeeded=False, diagnostic_output="bless: failed", exit_code=1,
            kind=OperationKind.CREATE_SNAPSHOT,
        )
        assert outcome.status == "failed"
        with pytest.raises(ExecutionError) as exc:
            outcome.raise_for_failure()
        assert exc.value.diagnostic == "bless: failed"
        assert exc.value.exit_code == 1
        assert "create_snapshot" in str(exc.value)


class TestPresetModel:
    def test_aliases_round_trip(self):
        preset = PresetDefinition.model_validate({
            "name": "GPU",
            "requiresKDK": True,
            "rebuildCache": True,
            "files": [{"source": "A.kext", "conflictResolution": "merge", "systemVersion": "14.2"}],
        })
        assert preset.requires_kdk
        dumped = preset.model_dump(by_alias=True, mode="json")
        assert dumped["requiresKDK"] is True
        assert dumped["files"][0]["conflictResolution"] == "merge"

    def test_unknown_policy_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            PresetDefinition.model_validate({
                "name": "Bad",
                "files": [{"source": "A", "conflictResolution": "shred", "systemVersion": "14"}],
            })


class TestErrors:
    def test_hierarchy(self):
        assert issubclass(CompilationError, PreconditionError)
        assert issubclass(OperationInProgressError, PreconditionError)
        assert issubclass(ExecutionError, RootPatchError)

    def test_key_preserved(self):
        err = OperationInProgressError("busy", key="operation_in_progress")
        assert err.key == "operation_in_progress"
        assert str(err) == "busy"
