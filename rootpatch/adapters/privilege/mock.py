"""
Mock boundary — records scripts instead of running them.

Used by ``--mock`` on the CLI and by tests.  Results are taken from a
queue; when it runs dry every call succeeds with an output that echoes
the step markers the script would have printed.
"""

from __future__ import annotations

import re
import threading
from collections import deque
from typing import Iterable

from rootpatch.adapters.privilege.base import BoundaryResult, PrivilegeBoundary
from rootpatch.core.services.patcher.execution.script_render import STEP_MARKER

# shlex.quote spells an embedded apostrophe as '"'"'
_QUOTED_APOSTROPHE = "'\"'\"'"
_MARKER_RE = re.compile(
    r"echo '" + re.escape(STEP_MARKER) + r"((?:[^']|" + re.escape(_QUOTED_APOSTROPHE) + r")*)'"
)


class MockBoundary(PrivilegeBoundary):
    """Records every script; returns scripted results.

    Args:
        results: Results to hand out in order.
        gate: Optional event ``run`` waits on before returning, so tests
            can hold an operation in the executing state.
    """

    def __init__(
        self,
        results: Iterable[BoundaryResult] = (),
        *,
        gate: threading.Event | None = None,
    ) -> None:
        self._results = deque(results)
        self._gate = gate
        self.scripts: list[str] = []

    @property
    def name(self) -> str:
        return "mock"

    def is_available(self) -> bool:
        return True

    @property
    def calls(self) -> int:
        return len(self.scripts)

    def run(self, script: str) -> BoundaryResult:
        self.scripts.append(script)
        if self._gate is not None:
            self._gate.wait()
        if self._results:
            return self._results.popleft()
        return BoundaryResult.success(echo_markers(script))


def echo_markers(script: str) -> str:
    """The marker lines a successful run of ``script`` would print."""
    lines = []
    for match in _MARKER_RE.finditer(script):
        label = match.group(1).replace(_QUOTED_APOSTROPHE, "'")
        lines.append(STEP_MARKER + label)
    return "\n".join(lines)
