"""
osascript boundary — the macOS administrator prompt.

Wraps the rendered script in ``do shell script ... with administrator
privileges`` and runs it through ``osascript -e``.  The system shows a
single authentication dialog per call.
"""

from __future__ import annotations

import logging
import shutil

from rootpatch.adapters.privilege.base import BoundaryResult, PrivilegeBoundary
from rootpatch.core.services.patcher.data import constants as C
from rootpatch.core.services.patcher.execution.script_render import render_applescript
from rootpatch.core.services.patcher.execution.subprocess_runner import (
    HostRunner,
    combined_output,
    run_command,
)

logger = logging.getLogger(__name__)

# Authorization dialog dismissed (errAEUserCanceled / -128)
USER_CANCELED_MARKER = "-128"


class OsascriptBoundary(PrivilegeBoundary):
    """Elevate via AppleScript's administrator privileges prompt."""

    def __init__(self, runner: HostRunner = run_command) -> None:
        self._run = runner

    @property
    def name(self) -> str:
        return "osascript"

    def is_available(self) -> bool:
        return shutil.which(C.OSASCRIPT) is not None

    def run(self, script: str) -> BoundaryResult:
        applescript = render_applescript(script)
        result = self._run([C.OSASCRIPT, "-e", applescript], timeout=None)
        output = combined_output(result)

        if result.get("ok"):
            return BoundaryResult.success(output)

        if USER_CANCELED_MARKER in (result.get("stderr") or ""):
            logger.info("Administrator prompt canceled")
        return BoundaryResult.failure(output, result.get("returncode"))
