"""
Shared CLI plumbing — settings, orchestrator wiring, outcome display.

Commands pull collaborators out of ``ctx.obj``.  Tests pre-seed
``runner`` / ``probe`` / ``boundary`` there through
``CliRunner.invoke(..., obj={...})``; the real CLI fills them lazily.
"""

from __future__ import annotations

import json
import sys
from typing import Any

import click

from rootpatch.core.config.loader import ConfigError, load_settings
from rootpatch.core.config.settings import Settings
from rootpatch.core.errors import RootPatchError
from rootpatch.core.models.outcome import OperationOutcome


def get_settings(ctx: click.Context) -> Settings:
    """Settings for this invocation, loaded once."""
    settings = ctx.obj.get("settings")
    if settings is None:
        try:
            settings = load_settings(ctx.obj.get("config_path"))
        except ConfigError as e:
            click.secho(f"❌ {e}", fg="red")
            sys.exit(1)
        ctx.obj["settings"] = settings
    return settings


def get_boundary(ctx: click.Context):
    """The privilege boundary selected by ``--mock`` or settings."""
    from rootpatch.adapters.privilege import boundary_for_mode

    boundary = ctx.obj.get("boundary")
    if boundary is not None:
        return boundary

    settings = get_settings(ctx)
    mode = "mock" if ctx.obj.get("mock") else settings.privilege.mode
    password = ""
    if mode == "sudo":
        password = ctx.obj.get("sudo_password") or click.prompt(
            "sudo password", hide_input=True, err=True,
        )
    boundary = boundary_for_mode(mode, password=password)
    ctx.obj["boundary"] = boundary
    return boundary


def get_orchestrator(ctx: click.Context):
    """Build (once) the orchestrator for this invocation."""
    from rootpatch.core.services.patcher.orchestration.orchestrator import PatchOrchestrator
    from rootpatch.core.services.patcher.execution.subprocess_runner import run_command
    from rootpatch.core.services.patcher.resolver.compiler import volume_probe

    orchestrator = ctx.obj.get("orchestrator")
    if orchestrator is None:
        orchestrator = PatchOrchestrator.from_settings(
            get_settings(ctx),
            get_boundary(ctx),
            runner=ctx.obj.get("runner") or run_command,
            probe=ctx.obj.get("probe") or volume_probe,
        )
        ctx.obj["orchestrator"] = orchestrator
    return orchestrator


def fail(error: Exception, as_json: bool = False) -> None:
    """Report a rejected operation and exit 1."""
    diagnostic = getattr(error, "diagnostic", "")
    if as_json:
        payload: dict[str, Any] = {"ok": False, "error": str(error), "type": type(error).__name__}
        key = getattr(error, "key", "")
        if key:
            payload["key"] = key
        if diagnostic:
            payload["diagnostic"] = diagnostic
        click.echo(json.dumps(payload, indent=2))
    else:
        click.secho(f"❌ {error}", fg="red")
        if diagnostic:
            click.echo(diagnostic)
    sys.exit(1)


def run_operation(ctx: click.Context, request, *, as_json: bool, prompt_restart: bool) -> None:
    """Run ``request`` to completion and report it."""
    orchestrator = get_orchestrator(ctx)
    try:
        outcome = orchestrator.run(request)
    except RootPatchError as e:
        fail(e, as_json)
    finally:
        orchestrator.shutdown(wait=False)

    show_outcome(outcome, as_json)
    if not outcome.succeeded:
        sys.exit(1)

    if outcome.requires_restart and prompt_restart and not as_json:
        confirm = click.confirm("🔁 Restart now to apply changes?", default=False)
        result = orchestrator.request_restart(confirm)
        if not result.get("ok"):
            click.secho(f"⚠️  Restart failed: {result.get('error', '')}", fg="yellow")


def show_outcome(outcome: OperationOutcome, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(outcome.to_dict(), indent=2))
        return

    if outcome.succeeded:
        click.secho(f"✅ {outcome.kind} completed", fg="green", bold=True)
        click.echo(f"   Steps: {outcome.steps_total}  ({outcome.duration_ms} ms)")
        if outcome.requires_restart:
            click.secho("   Restart required to apply changes.", fg="yellow")
    else:
        click.secho(f"❌ {outcome.kind} failed (exit {outcome.exit_code})", fg="red", bold=True)
        click.secho("   The volume state is undefined; review the output below.", fg="yellow")
        if outcome.diagnostic_output:
            click.echo(outcome.diagnostic_output)

    if outcome.detached:
        click.secho("   ⚠️  Tracking was canceled before the operation returned.", fg="yellow")


def show_plan(volume, steps, as_json: bool) -> None:
    """Print a compiled sequence without running it."""
    from rootpatch.core.services.patcher.execution.script_render import render_script

    script = render_script(steps)
    if as_json:
        click.echo(json.dumps({
            "volume": volume.to_dict(),
            "steps": [s.to_dict() for s in steps],
            "script": script,
        }, indent=2))
        return

    click.secho(f"\n📋 Plan for {volume.resolved_identifier} at {volume.mount_path}", fg="cyan", bold=True)
    for i, step in enumerate(steps, start=1):
        marker = " (continues on failure)" if step.continue_on_failure else ""
        click.echo(f"   {i:2d}. [{step.kind}] {step.label}{marker}")
        click.echo(f"       $ {step.command}")
    click.echo()
