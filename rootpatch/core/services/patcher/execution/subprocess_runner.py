"""
L4 Execution — Core subprocess runner.

The SINGLE PLACE where ``subprocess.run`` is called for host
operations.  Privileged scripts go through a privilege boundary, which
calls back into this runner; volume queries call it directly.
"""

from __future__ import annotations

import logging
import subprocess
import time
from typing import Any, Callable

logger = logging.getLogger(__name__)

HostRunner = Callable[..., dict[str, Any]]
"""Signature shared by ``run_command`` and its test doubles."""


def run_command(
    cmd: list[str],
    *,
    timeout: float | None = 60,
    input_text: str | None = None,
    redact: tuple[str, ...] = (),
) -> dict[str, Any]:
    """Run a command and capture its output.

    Never raises.  ``timeout=None`` blocks until the command exits,
    which is what privileged scripts need: a kernel-cache rebuild can
    run for many minutes and is not stuck.

    Args:
        cmd: Command list for ``subprocess.run()``.
        timeout: Seconds before ``TimeoutExpired``; None for no limit.
        input_text: Data piped to stdin (e.g. a sudo password).
        redact: Strings to mask in the debug log line.

    Returns:
        ``{"ok": True, "stdout": "...", "stderr": "...", "returncode": 0,
        "elapsed_ms": N}`` on success,
        ``{"ok": False, "error": "...", "stdout": ..., "stderr": ...,
        "returncode": N}`` on failure.
    """
    shown = " ".join(cmd)
    for secret in redact:
        if secret:
            shown = shown.replace(secret, "********")
    logger.debug("Executing: %s", shown)

    start = time.monotonic()
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            # rsync -i lists file names verbatim; they need not be UTF-8
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            input=input_text,
        )
    except subprocess.TimeoutExpired:
        return {
            "ok": False,
            "error": f"Command timed out ({timeout}s)",
            "stdout": "",
            "stderr": "",
            "returncode": None,
        }
    except FileNotFoundError:
        return {
            "ok": False,
            "error": f"Command not found: {cmd[0]}",
            "stdout": "",
            "stderr": "",
            "returncode": None,
        }
    except OSError as e:
        logger.exception("Subprocess error: %s", shown)
        return {
            "ok": False,
            "error": str(e),
            "stdout": "",
            "stderr": "",
            "returncode": None,
        }

    elapsed_ms = int((time.monotonic() - start) * 1000)
    stdout = result.stdout or ""
    stderr = result.stderr or ""

    if result.returncode == 0:
        return {
            "ok": True,
            "stdout": stdout,
            "stderr": stderr,
            "returncode": 0,
            "elapsed_ms": elapsed_ms,
        }

    return {
        "ok": False,
        "error": f"Command failed (exit {result.returncode})",
        "stdout": stdout,
        "stderr": stderr,
        "returncode": result.returncode,
        "elapsed_ms": elapsed_ms,
    }


def combined_output(result: dict[str, Any]) -> str:
    """stdout and stderr of a runner result joined, for verbatim display."""
    parts = [result.get("stdout", ""), result.get("stderr", "")]
    text = "\n".join(p.rstrip("\n") for p in parts if p)
    if not text and not result.get("ok"):
        text = result.get("error", "")
    return text
