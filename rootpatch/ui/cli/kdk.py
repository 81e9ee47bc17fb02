"""
CLI commands for Kernel Debug Kits.

Thin wrappers over ``rootpatch.core.services.patcher.detection.kdk``.
"""

from __future__ import annotations

import json

import click

from rootpatch.ui.cli.common import get_settings


@click.group()
def kdk() -> None:
    """Kernel Debug Kits — discover installed KDKs."""


@kdk.command("list")
@click.option("--dir", "kdk_dir", default=None, help="Directory to scan (default: settings.kdk_dir).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def kdk_list(ctx: click.Context, kdk_dir: str | None, as_json: bool) -> None:
    """List installed KDKs."""
    from rootpatch.core.services.patcher.detection.kdk import discover_kdks

    directory = kdk_dir or get_settings(ctx).kdk_path
    result = discover_kdks(directory)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if result.error:
        click.secho(f"❌ Cannot read {result.directory}: {result.error}", fg="red")
        return

    if not result.directory_exists:
        click.secho(f"⚠️  {result.directory} does not exist", fg="yellow")
    elif not result.found:
        click.secho(f"⚠️  No KDK found in {result.directory}", fg="yellow")
    else:
        click.secho(f"🧰 {len(result.items)} KDK(s) in {result.directory}", fg="cyan", bold=True)
        for item in result.items:
            click.echo(f"   • {item}")
        return

    click.echo(f"   Download one from {result.to_dict()['download_url']}")
