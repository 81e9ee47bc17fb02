"""
CLI commands for privileged operations.

Thin wrappers over ``rootpatch.core.services.patcher.orchestration``.

Usage::

    rootpatch install ./Foo.kext ./Bar.framework --backup
    rootpatch install ./Foo.kext --merge /System/Library/Extensions:./Payload
    rootpatch merge-kdk /Library/Developer/KDKs/KDK_14.2.kdk --full
    rootpatch rebuild-cache
    rootpatch snapshot create
    rootpatch snapshot restore
    rootpatch plan rebuild_cache --json
    rootpatch restart --yes
"""

from __future__ import annotations

import json
import os
import sys

import click

from rootpatch.core.errors import RootPatchError
from rootpatch.core.models.request import (
    CreateSnapshotRequest,
    InstallRequest,
    MergeOperation,
    MergeRequest,
    OperationKind,
    RebuildCacheRequest,
    RestoreSnapshotRequest,
)
from rootpatch.ui.cli.common import fail, get_orchestrator, run_operation, show_plan

_json_option = click.option(
    "--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.",
)
_dry_run_option = click.option(
    "--dry-run", is_flag=True, help="Resolve and compile only; print the plan.",
)
_restart_option = click.option(
    "--restart-prompt/--no-restart-prompt", default=True,
    help="Ask whether to restart after a successful run.",
)

# The elevated shell starts in /, so every host path is made absolute here.
_payload_path = click.Path(exists=True, resolve_path=True)
_kdk_path = click.Path(exists=True, file_okay=False, resolve_path=True)


def _parse_merges(specs: tuple[str, ...]) -> list[MergeOperation]:
    """``DEST:SOURCE`` → MergeOperation (DEST is mount-relative)."""
    merges = []
    for spec in specs:
        destination, sep, source = spec.partition(":")
        if not sep or not destination or not source:
            raise click.BadParameter(
                f"Expected DEST:SOURCE, got {spec!r}", param_hint="--merge",
            )
        source = os.path.realpath(os.path.expanduser(source))
        if not os.path.isdir(source):
            raise click.BadParameter(
                f"Merge source {source!r} is not a directory", param_hint="--merge",
            )
        merges.append(MergeOperation(source=source, destination=destination))
    return merges


def _dispatch(ctx: click.Context, request, *, as_json: bool, dry_run: bool, restart_prompt: bool) -> None:
    if dry_run:
        orchestrator = get_orchestrator(ctx)
        try:
            volume, steps = orchestrator.plan(request)
        except RootPatchError as e:
            fail(e, as_json)
        show_plan(volume, steps, as_json)
        return
    run_operation(ctx, request, as_json=as_json, prompt_restart=restart_prompt)


# ── Install ────────────────────────────────────────────────────


@click.command()
@click.argument("files", nargs=-1, type=_payload_path)
@click.option("--merge", "merges", multiple=True, metavar="DEST:SOURCE",
              help="Merge SOURCE into the mount-relative DEST directory.")
@click.option("--force", is_flag=True, help="Overwrite existing payloads.")
@click.option("--backup", is_flag=True, help="Back up existing payloads before replacing them.")
@click.option("--rebuild-cache", is_flag=True, help="Add an extra kernel cache rebuild.")
@click.option("--legacy-extensions", "--le", is_flag=True, help="Install kexts to /Library/Extensions.")
@click.option("--private-frameworks", is_flag=True, help="Install frameworks to PrivateFrameworks.")
@click.option("--kdk", "kdk_path", type=_kdk_path, default=None, help="KDK to merge before installing.")
@_json_option
@_dry_run_option
@_restart_option
@click.pass_context
def install(
    ctx: click.Context,
    files: tuple[str, ...],
    merges: tuple[str, ...],
    force: bool,
    backup: bool,
    rebuild_cache: bool,
    legacy_extensions: bool,
    private_frameworks: bool,
    kdk_path: str | None,
    as_json: bool,
    dry_run: bool,
    restart_prompt: bool,
) -> None:
    """Install kexts / frameworks into the root volume.

    Existing payloads are skipped unless --force or --backup is given.
    """
    request = InstallRequest(
        files=list(files),
        merge_operations=_parse_merges(merges),
        force_overwrite=force,
        backup_existing=backup,
        rebuild_cache=rebuild_cache,
        install_to_legacy_extensions_dir=legacy_extensions,
        install_to_private_frameworks=private_frameworks,
        selected_kdk_path=kdk_path,
        merge_kdk=kdk_path is not None,
    )
    _dispatch(ctx, request, as_json=as_json, dry_run=dry_run, restart_prompt=restart_prompt)


# ── KDK merge ──────────────────────────────────────────────────


@click.command("merge-kdk")
@click.argument("kdk_path", type=_kdk_path)
@click.option("--full", "full_merge", is_flag=True,
              help="Merge the whole KDK /System tree, not only Extensions.")
@_json_option
@_dry_run_option
@_restart_option
@click.pass_context
def merge_kdk(
    ctx: click.Context,
    kdk_path: str,
    full_merge: bool,
    as_json: bool,
    dry_run: bool,
    restart_prompt: bool,
) -> None:
    """Merge a Kernel Debug Kit into the root volume."""
    request = MergeRequest(kdk_path=kdk_path, full_merge=full_merge)
    _dispatch(ctx, request, as_json=as_json, dry_run=dry_run, restart_prompt=restart_prompt)


# ── Kernel cache / snapshots ───────────────────────────────────


@click.command("rebuild-cache")
@_json_option
@_dry_run_option
@_restart_option
@click.pass_context
def rebuild_cache(ctx: click.Context, as_json: bool, dry_run: bool, restart_prompt: bool) -> None:
    """Rebuild the kernel collection on the root volume."""
    _dispatch(ctx, RebuildCacheRequest(), as_json=as_json, dry_run=dry_run, restart_prompt=restart_prompt)


@click.group()
def snapshot() -> None:
    """Boot snapshot — reseal or revert."""


@snapshot.command("create")
@_json_option
@_dry_run_option
@_restart_option
@click.pass_context
def snapshot_create(ctx: click.Context, as_json: bool, dry_run: bool, restart_prompt: bool) -> None:
    """Create (bless) a new boot snapshot from the mounted volume."""
    _dispatch(ctx, CreateSnapshotRequest(), as_json=as_json, dry_run=dry_run, restart_prompt=restart_prompt)


@snapshot.command("restore")
@_json_option
@_dry_run_option
@_restart_option
@click.pass_context
def snapshot_restore(ctx: click.Context, as_json: bool, dry_run: bool, restart_prompt: bool) -> None:
    """Revert to the last sealed snapshot."""
    _dispatch(ctx, RestoreSnapshotRequest(), as_json=as_json, dry_run=dry_run, restart_prompt=restart_prompt)


# ── Plan ───────────────────────────────────────────────────────


@click.command()
@click.argument("kind", type=click.Choice([k.value for k in OperationKind]))
@click.option("--file", "files", multiple=True, type=click.Path(resolve_path=True),
              help="Payload for install plans.")
@click.option("--kdk", "kdk_path", type=click.Path(resolve_path=True), default=None,
              help="KDK for merge_kdk / install plans.")
@click.option("--full", "full_merge", is_flag=True, help="Full /System merge for merge_kdk.")
@_json_option
@click.pass_context
def plan(
    ctx: click.Context,
    kind: str,
    files: tuple[str, ...],
    kdk_path: str | None,
    full_merge: bool,
    as_json: bool,
) -> None:
    """Show the step sequence an operation would run, without running it."""
    op = OperationKind(kind)
    if op == OperationKind.INSTALL:
        request = InstallRequest(
            files=list(files),
            selected_kdk_path=kdk_path,
            merge_kdk=kdk_path is not None,
        )
    elif op == OperationKind.MERGE_KDK:
        request = MergeRequest(kdk_path=kdk_path or "", full_merge=full_merge)
    elif op == OperationKind.REBUILD_CACHE:
        request = RebuildCacheRequest()
    elif op == OperationKind.CREATE_SNAPSHOT:
        request = CreateSnapshotRequest()
    else:
        request = RestoreSnapshotRequest()
    _dispatch(ctx, request, as_json=as_json, dry_run=True, restart_prompt=False)


# ── Restart ────────────────────────────────────────────────────


@click.command()
@click.option("--yes", "-y", is_flag=True, help="Restart without asking.")
@_json_option
@click.pass_context
def restart(ctx: click.Context, yes: bool, as_json: bool) -> None:
    """Restart the host so a patched snapshot takes effect."""
    confirm = yes or click.confirm("🔁 Restart now?", default=False)
    try:
        result = get_orchestrator(ctx).request_restart(confirm)
    except RootPatchError as e:
        fail(e, as_json)

    if as_json:
        click.echo(json.dumps(result, indent=2))
    elif not result.get("ok"):
        click.secho(f"❌ {result.get('error', 'Restart failed')}", fg="red")
    elif result.get("restarted"):
        click.secho("🔁 Restarting…", fg="cyan")
    else:
        click.echo("Restart postponed.")

    if not result.get("ok"):
        sys.exit(1)
