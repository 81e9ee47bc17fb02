"""
Error taxonomy for patch operations.

    RootPatchError
    ├── ResolutionError        cannot determine / mount the root volume
    ├── PreconditionError      request rejected before any step is compiled
    │   ├── CompilationError   compiled sequence violates ordering rules
    │   └── OperationInProgressError
    ├── ExecutionError         privileged script exited non-zero
    └── PresetDataError        preset resource missing (normally a warning)

Host-query helpers and privilege boundaries never raise — they return
result values.  Raising starts at the resolver / compiler seams.
"""

from __future__ import annotations


class RootPatchError(Exception):
    """Base class for all rootpatch errors."""


class ResolutionError(RootPatchError):
    """The root volume could not be resolved.

    ``diagnostic`` carries the raw output of the failing host query so
    the caller can surface it verbatim.
    """

    def __init__(self, message: str, diagnostic: str = "") -> None:
        super().__init__(message)
        self.diagnostic = diagnostic


class PreconditionError(RootPatchError):
    """The request is not meaningful and was rejected before compiling."""

    def __init__(self, message: str, key: str = "") -> None:
        super().__init__(message)
        self.key = key


class CompilationError(PreconditionError):
    """A compiled step sequence violates an ordering invariant."""


class OperationInProgressError(PreconditionError):
    """Another privileged operation is still outstanding."""


class ExecutionError(RootPatchError):
    """The privileged script failed.

    Filesystem state after a failed multi-step script is undefined.
    """

    def __init__(self, message: str, diagnostic: str = "", exit_code: int | None = None) -> None:
        super().__init__(message)
        self.diagnostic = diagnostic
        self.exit_code = exit_code


class PresetDataError(RootPatchError):
    """A preset file or version directory is missing."""
