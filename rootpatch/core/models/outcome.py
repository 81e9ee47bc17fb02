"""
OperationOutcome — the single terminal result of a privileged operation.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from rootpatch.core.errors import ExecutionError
from rootpatch.core.models.request import OperationKind


class OperationOutcome(BaseModel):
    """What the caller gets back once the privileged call resolves.

    ``diagnostic_output`` is the combined stdout/stderr, verbatim.  On
    failure the filesystem state is undefined and must be reported as
    such; there is no partial-success bookkeeping.
    """

    model_config = ConfigDict(frozen=True)

    succeeded: bool
    diagnostic_output: str | None = None
    requires_restart: bool = False

    kind: OperationKind | None = None
    operation_id: str = ""
    exit_code: int | None = None
    detached: bool = False          # operator stopped tracking before completion
    steps_total: int = 0

    started_at: str = ""
    ended_at: str = ""
    duration_ms: int = 0

    @property
    def status(self) -> str:
        return "ok" if self.succeeded else "failed"

    def to_dict(self) -> dict:
        return self.model_dump(mode="json") | {"status": self.status}

    def raise_for_failure(self) -> None:
        """Raise ``ExecutionError`` carrying the diagnostic if the run failed."""
        if self.succeeded:
            return
        raise ExecutionError(
            f"{self.kind or 'operation'} failed (exit {self.exit_code})",
            diagnostic=self.diagnostic_output or "",
            exit_code=self.exit_code,
        )
