"""
CompiledStep — one structured privileged invocation.

Steps are values, never free-form shell text.  The script renderer is
the only place that turns them into a command line, quoting every
token, so no request field can inject shell syntax.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from enum import StrEnum
from typing import Iterator

from pydantic import BaseModel, ConfigDict


class StepKind(StrEnum):
    """Role of a step in the compiled sequence."""

    PREPARE = "prepare"                    # mount-point housekeeping
    RESOLVE = "resolve"                    # make the resolved volume writable
    MERGE_KDK = "merge_kdk"
    BACKUP = "backup"
    INSTALL = "install"
    MERGE = "merge"
    REBUILD_CACHE = "rebuild_cache"
    VERIFY = "verify"
    RESEAL = "reseal"
    RESTORE_SNAPSHOT = "restore_snapshot"
    UNMOUNT = "unmount"


class ShellCommand(BaseModel):
    """A program plus its argument vector.

    ``success_codes`` is the expected-success predicate: the exit
    statuses counted as success for this invocation.
    """

    model_config = ConfigDict(frozen=True)

    program: str
    args: tuple[str, ...] = ()
    success_codes: tuple[int, ...] = (0,)

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]

    def __str__(self) -> str:
        return shlex.join(self.argv)


class PathGuard(BaseModel):
    """Run-time precondition: the step only runs if ``path`` exists
    (``exists=True``) or is absent (``exists=False``) on the volume.

    A guard that does not hold skips the step; it never fails the script.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    exists: bool = True


class CompiledStep(BaseModel):
    """A labelled invocation in an immutable, ordered sequence."""

    model_config = ConfigDict(frozen=True)

    kind: StepKind
    label: str
    command: ShellCommand
    target: str | None = None              # filesystem path the step writes to
    continue_on_failure: bool = False
    guard: PathGuard | None = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "label": self.label,
            "argv": self.command.argv,
            "target": self.target,
            "continue_on_failure": self.continue_on_failure,
            "guard": self.guard.model_dump() if self.guard else None,
        }


@dataclass(frozen=True)
class StepSequence:
    """The compiled, immutable output of the operation compiler."""

    steps: tuple[CompiledStep, ...] = ()

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self) -> Iterator[CompiledStep]:
        return iter(self.steps)

    def __getitem__(self, index: int) -> CompiledStep:
        return self.steps[index]

    @property
    def kinds(self) -> list[StepKind]:
        return [s.kind for s in self.steps]

    def count(self, kind: StepKind) -> int:
        return sum(1 for s in self.steps if s.kind == kind)

    def index_of(self, kind: StepKind) -> int:
        """Position of the first step of ``kind``, or -1."""
        for i, step in enumerate(self.steps):
            if step.kind == kind:
                return i
        return -1

    def last_index_of(self, kind: StepKind) -> int:
        for i in range(len(self.steps) - 1, -1, -1):
            if self.steps[i].kind == kind:
                return i
        return -1

    def targets(self, *kinds: StepKind) -> list[str]:
        """Write targets of steps matching ``kinds`` (all kinds when empty)."""
        return [
            s.target for s in self.steps
            if s.target and (not kinds or s.kind in kinds)
        ]
