"""
L4 Execution — Privileged executor.

Renders a compiled sequence into ONE script and hands it to a
privilege boundary: one operation, one credential prompt.  There is
no retry and no rollback.  A failed script leaves the filesystem in
an undefined state and the outcome says so through its diagnostic.
"""

from __future__ import annotations

import logging
import time
import uuid
from datetime import UTC, datetime

from rootpatch.adapters.privilege.base import PrivilegeBoundary
from rootpatch.core.models.outcome import OperationOutcome
from rootpatch.core.models.request import OperationKind
from rootpatch.core.models.step import StepSequence
from rootpatch.core.observability.event_log import EventLog
from rootpatch.core.services.patcher.execution.script_render import (
    parse_failure_markers,
    parse_step_markers,
    render_script,
)

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class PrivilegedExecutor:
    """Run compiled step sequences through a privilege boundary."""

    def __init__(self, boundary: PrivilegeBoundary, event_log: EventLog | None = None) -> None:
        self.boundary = boundary
        self._events = event_log

    def execute(
        self,
        steps: StepSequence,
        kind: OperationKind,
        operation_id: str | None = None,
    ) -> OperationOutcome:
        """Run ``steps`` as a single elevated script.

        Blocks until the script exits.  Never raises: boundary failures
        come back as an unsuccessful outcome with the output verbatim.
        """
        op_id = operation_id or uuid.uuid4().hex[:12]
        script = render_script(steps)
        logger.info("Executing %s (%d steps) via %s", kind, len(steps), self.boundary.name)
        logger.debug("Script: %s", script)

        started_at = _now_iso()
        start = time.monotonic()
        result = self.boundary.run(script)
        duration_ms = int((time.monotonic() - start) * 1000)

        output = result.output
        self._report_markers(output or "")

        if result.ok:
            logger.info("%s finished in %d ms", kind, duration_ms)
        else:
            logger.error("%s failed (exit %s)", kind, result.exit_code)

        return OperationOutcome(
            succeeded=result.ok,
            diagnostic_output=output,
            requires_restart=result.ok and kind.requires_restart,
            kind=kind,
            operation_id=op_id,
            exit_code=result.exit_code,
            steps_total=len(steps),
            started_at=started_at,
            ended_at=_now_iso(),
            duration_ms=duration_ms,
        )

    def _report_markers(self, output: str) -> None:
        if self._events is None:
            return
        for label in parse_step_markers(output):
            self._events.append("step_started", label)
        for label in parse_failure_markers(output):
            self._events.append("step_failed_continuing", label)
