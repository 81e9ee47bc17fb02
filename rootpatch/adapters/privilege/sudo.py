"""
sudo boundary — headless elevation with a piped password.

Security invariants:
- Password piped via stdin only (``sudo -S``)
- ``-k`` invalidates cached credentials every time
- Password never logged, never written to disk
- Password never appears in command args

Running as root skips sudo entirely.
"""

from __future__ import annotations

import logging
import os
import shutil

from rootpatch.adapters.privilege.base import BoundaryResult, PrivilegeBoundary
from rootpatch.core.observability.logging_config import register_secret
from rootpatch.core.services.patcher.execution.subprocess_runner import (
    HostRunner,
    combined_output,
    run_command,
)

logger = logging.getLogger(__name__)

SHELL = "/bin/bash"


class SudoBoundary(PrivilegeBoundary):
    """Run the script under ``sudo -S -k /bin/bash -c``."""

    def __init__(self, password: str = "", runner: HostRunner = run_command) -> None:
        self._password = password
        self._run = runner
        register_secret(password)

    @property
    def name(self) -> str:
        return "sudo"

    def is_available(self) -> bool:
        return os.geteuid() == 0 or shutil.which("sudo") is not None

    def run(self, script: str) -> BoundaryResult:
        if os.geteuid() == 0:
            result = self._run([SHELL, "-c", script], timeout=None)
            return self._to_result(result)

        if not self._password:
            return BoundaryResult.failure(
                "This operation requires sudo. Please provide a password.",
            )

        result = self._run(
            ["sudo", "-S", "-k", SHELL, "-c", script],
            timeout=None,
            input_text=self._password + "\n",
            redact=(self._password,),
        )

        stderr = (result.get("stderr") or "").lower()
        if not result.get("ok") and ("incorrect password" in stderr or "sorry" in stderr):
            logger.warning("sudo rejected the password")
            return BoundaryResult.failure("Wrong password. Try again.", result.get("returncode"))

        return self._to_result(result)

    @staticmethod
    def _to_result(result: dict) -> BoundaryResult:
        output = combined_output(result)
        if result.get("ok"):
            return BoundaryResult.success(output)
        return BoundaryResult.failure(output, result.get("returncode"))
