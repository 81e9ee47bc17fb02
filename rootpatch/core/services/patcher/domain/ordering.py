"""
L1 Domain — Ordering invariants for compiled sequences (pure).

Checked on every compiled sequence before it can reach the executor:

- exactly one resolve step, ahead of every step that writes
- every kernel-cache rebuild precedes every snapshot reseal
  (a cache built from stale content must never be sealed)
- unmount, when present, is the single last step
- no unmount on the legacy remount-in-place path
"""

from __future__ import annotations

from rootpatch.core.errors import CompilationError
from rootpatch.core.models.step import StepKind, StepSequence
from rootpatch.core.models.volume import VolumeContext

_HOUSEKEEPING = frozenset({StepKind.PREPARE, StepKind.RESOLVE})


def ensure_ordering(sequence: StepSequence, volume: VolumeContext) -> None:
    """Raise ``CompilationError`` if ``sequence`` breaks an invariant."""
    if sequence.count(StepKind.RESOLVE) != 1:
        raise CompilationError(
            f"Expected exactly one resolve step, found {sequence.count(StepKind.RESOLVE)}"
        )

    resolve_at = sequence.index_of(StepKind.RESOLVE)
    for i, step in enumerate(sequence):
        if i < resolve_at and step.kind not in _HOUSEKEEPING:
            raise CompilationError(
                f"Step '{step.label}' runs before the volume is resolved"
            )

    last_rebuild = sequence.last_index_of(StepKind.REBUILD_CACHE)
    first_reseal = sequence.index_of(StepKind.RESEAL)
    if last_rebuild >= 0 and first_reseal >= 0 and last_rebuild > first_reseal:
        raise CompilationError("Kernel cache rebuild must precede snapshot reseal")

    unmounts = sequence.count(StepKind.UNMOUNT)
    if unmounts:
        if not volume.uses_private_mount:
            raise CompilationError("Legacy remount-in-place path must not unmount")
        if unmounts > 1 or sequence.last_index_of(StepKind.UNMOUNT) != len(sequence) - 1:
            raise CompilationError("Unmount must be the single last step")
    elif volume.uses_private_mount:
        raise CompilationError("Private mount is never released")
