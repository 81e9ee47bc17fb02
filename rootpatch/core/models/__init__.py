"""
Domain models — Pydantic types for patch operations.

All models are re-exported here for convenient access:

    from rootpatch.core.models import InstallRequest, VolumeContext, CompiledStep
"""

from rootpatch.core.models.event import EventLogEntry
from rootpatch.core.models.outcome import OperationOutcome
from rootpatch.core.models.preset import ConflictResolution, PresetDefinition, PresetFile
from rootpatch.core.models.request import (
    CreateSnapshotRequest,
    InstallRequest,
    MergeOperation,
    MergeRequest,
    OperationKind,
    OperationRequest,
    RebuildCacheRequest,
    RestoreSnapshotRequest,
    request_for_kind,
)
from rootpatch.core.models.step import CompiledStep, PathGuard, ShellCommand, StepKind, StepSequence
from rootpatch.core.models.volume import VolumeContext

__all__ = [
    "CompiledStep",
    "ConflictResolution",
    "CreateSnapshotRequest",
    # event.py
    "EventLogEntry",
    # request.py
    "InstallRequest",
    "MergeOperation",
    "MergeRequest",
    "OperationKind",
    # outcome.py
    "OperationOutcome",
    "OperationRequest",
    "PathGuard",
    # preset.py
    "PresetDefinition",
    "PresetFile",
    "RebuildCacheRequest",
    "RestoreSnapshotRequest",
    # step.py
    "ShellCommand",
    "StepKind",
    "StepSequence",
    # volume.py
    "VolumeContext",
    "request_for_kind",
]
