"""
CLI commands for presets.

Thin wrappers over ``rootpatch.core.services.patcher.resolver.presets``.

Usage::

    rootpatch presets list
    rootpatch presets apply "AMD Legacy GPU" --kdk /Library/Developer/KDKs/KDK_14.2.kdk
    rootpatch presets install-resources ./Resources
"""

from __future__ import annotations

import json
import sys

import click

from rootpatch.core.errors import RootPatchError
from rootpatch.ui.cli.common import fail, get_orchestrator, get_settings, run_operation, show_plan


@click.group()
def presets() -> None:
    """Presets — declarative bundles of payloads and flags."""


@presets.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def presets_list(ctx: click.Context, as_json: bool) -> None:
    """List available presets."""
    from rootpatch.core.services.patcher.resolver.presets import load_presets

    settings = get_settings(ctx)
    found = load_presets(settings.presets_path)

    if as_json:
        click.echo(json.dumps(
            [p.model_dump(mode="json", by_alias=True) for p in found], indent=2,
        ))
        return

    if not found:
        click.secho(f"⚠️  No presets in {settings.presets_path}", fg="yellow")
        return

    click.secho(f"\n📦 Presets ({len(found)})", fg="cyan", bold=True)
    for preset in found:
        kdk = " [KDK]" if preset.requires_kdk else ""
        click.echo(f"   • {preset.name} {preset.version}{kdk}  — {preset.author}")
        if preset.description:
            click.echo(f"     {preset.description}")
        click.echo(f"     Files: {len(preset.files)}  Versions: {', '.join(preset.system_versions)}")
    click.echo()


@presets.command("apply")
@click.argument("name")
@click.option("--kdk", "kdk_path", type=click.Path(exists=True, file_okay=False, resolve_path=True),
              default=None, help="KDK for presets that require one.")
@click.option("--legacy-extensions", "--le", is_flag=True, help="Install kexts to /Library/Extensions.")
@click.option("--private-frameworks", is_flag=True, help="Install frameworks to PrivateFrameworks.")
@click.option("--dry-run", is_flag=True, help="Resolve and compile only; print the plan.")
@click.option("--restart-prompt/--no-restart-prompt", default=True,
              help="Ask whether to restart after a successful run.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def presets_apply(
    ctx: click.Context,
    name: str,
    kdk_path: str | None,
    legacy_extensions: bool,
    private_frameworks: bool,
    dry_run: bool,
    restart_prompt: bool,
    as_json: bool,
) -> None:
    """Expand preset NAME into an install and run it."""
    from rootpatch.core.services.patcher.resolver.presets import (
        PresetExpander,
        find_preset,
        load_presets,
    )

    settings = get_settings(ctx)
    preset = find_preset(load_presets(settings.presets_path), name)
    if preset is None:
        click.secho(f"❌ Unknown preset: {name}", fg="red")
        sys.exit(1)

    orchestrator = get_orchestrator(ctx)
    expander = PresetExpander(settings.preset_files_path, orchestrator.events)
    try:
        request = expander.expand(
            preset,
            kdk_path=kdk_path,
            install_to_legacy=legacy_extensions,
            install_to_private_frameworks=private_frameworks,
        )
        if dry_run:
            volume, steps = orchestrator.plan(request)
            show_plan(volume, steps, as_json)
            return
    except RootPatchError as e:
        fail(e, as_json)

    if not as_json:
        for entry in orchestrator.events.snapshot():
            if entry.key.startswith("warning_"):
                click.secho(f"⚠️  {entry.message}", fg="yellow")

    run_operation(ctx, request, as_json=as_json, prompt_restart=restart_prompt)


@presets.command("install-resources")
@click.argument("source", type=click.Path(exists=True, file_okay=False))
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def presets_install_resources(ctx: click.Context, source: str, as_json: bool) -> None:
    """Copy SOURCE/Presets and SOURCE/PresetFiles into the configured locations."""
    from rootpatch.core.services.patcher.resolver.presets import install_preset_resources

    settings = get_settings(ctx)
    try:
        result = install_preset_resources(
            source, settings.presets_path, settings.preset_files_path,
        )
    except RootPatchError as e:
        fail(e, as_json)

    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    click.secho("✅ Preset resources installed", fg="green", bold=True)
    click.echo(f"   Presets: {result['presets']}")
    click.echo(f"   Versions: {', '.join(result['versions']) or '(none)'}")
