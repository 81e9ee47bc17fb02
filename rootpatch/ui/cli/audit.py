"""
CLI command for the audit ledger.

Thin wrapper over ``rootpatch.core.persistence.audit``.
"""

from __future__ import annotations

import json

import click

from rootpatch.ui.cli.common import get_settings


@click.command("log")
@click.option("-n", "count", default=20, show_default=True, help="Number of entries.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def log(ctx: click.Context, count: int, as_json: bool) -> None:
    """Show the most recent privileged operations."""
    from rootpatch.core.persistence.audit import AuditWriter

    writer = AuditWriter(get_settings(ctx).audit_file)
    entries = writer.read_recent(count)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo("No operations recorded yet.")
        return

    colors = {"ok": "green", "failed": "red", "rejected": "yellow"}
    for entry in entries:
        click.echo(f"{entry.timestamp}  {entry.operation_id}  {entry.operation_type:<16} ", nl=False)
        click.secho(entry.status, fg=colors.get(entry.status, "white"))
        if entry.preset:
            click.echo(f"   preset: {entry.preset}")
        for err in entry.errors:
            click.echo(f"   • {err.splitlines()[0] if err else err}")
