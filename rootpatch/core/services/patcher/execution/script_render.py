"""
L4 Execution — Script renderer.

The only place structured steps become shell text.  Every token goes
through ``shlex.quote``; steps are joined with a hard ``&&`` so any
non-zero exit aborts everything after it.

Rendering per step:

    plain                 echo '==> label' && prog 'arg' ...
    custom success codes  echo '==> label' && { prog ...; rc=$?; [ "$rc" -eq 0 ] || [ "$rc" -eq 24 ]; }
    continue_on_failure   echo '==> label' && { prog ... || echo '!! label failed'; }
    guarded (exists)      echo '==> label' && { [ ! -e '/path' ] || prog ...; }
    guarded (absent)      echo '==> label' && { [ -e '/path' ] || prog ...; }
"""

from __future__ import annotations

import shlex
from typing import Iterable

from rootpatch.core.models.step import CompiledStep, ShellCommand

STEP_MARKER = "==> "
FAILURE_MARKER = "!! "


def quote_command(command: ShellCommand) -> str:
    return " ".join(shlex.quote(token) for token in command.argv)


def render_step(step: CompiledStep) -> str:
    marker = f"echo {shlex.quote(STEP_MARKER + step.label)}"
    body = quote_command(step.command)

    codes = step.command.success_codes
    if codes != (0,):
        checks = " || ".join(f'[ "$rc" -eq {code} ]' for code in codes)
        body = f"{{ {body}; rc=$?; {checks}; }}"

    if step.guard is not None:
        negate = "! " if step.guard.exists else ""
        body = f"{{ [ {negate}-e {shlex.quote(step.guard.path)} ] || {body}; }}"

    if step.continue_on_failure:
        warn = f"echo {shlex.quote(FAILURE_MARKER + step.label + ' failed')}"
        body = f"{{ {body} || {warn}; }}"

    return f"{marker} && {body}"


def render_script(steps: Iterable[CompiledStep]) -> str:
    """Concatenate steps into one ``&&``-joined script."""
    return " && ".join(render_step(step) for step in steps)


def render_applescript(script: str) -> str:
    """Wrap a shell script for ``do shell script ... with administrator privileges``."""
    escaped = script.replace("\\", "\\\\").replace('"', '\\"')
    return f'do shell script "{escaped}" with administrator privileges'


def parse_step_markers(output: str) -> list[str]:
    """Labels of steps that started, in order, from combined script output."""
    labels = []
    for line in output.splitlines():
        if line.startswith(STEP_MARKER):
            labels.append(line[len(STEP_MARKER):].strip())
    return labels


def parse_failure_markers(output: str) -> list[str]:
    """Labels of continue-on-failure steps that reported a failure."""
    failed = []
    for line in output.splitlines():
        if line.startswith(FAILURE_MARKER) and line.rstrip().endswith(" failed"):
            failed.append(line[len(FAILURE_MARKER):].rstrip()[: -len(" failed")])
    return failed
