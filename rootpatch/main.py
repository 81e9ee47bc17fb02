"""
rootpatch — CLI entrypoint.

Usage:
    python -m rootpatch.main --help
    rootpatch kdk list
    rootpatch install ./Foo.kext --backup
"""

from __future__ import annotations

import os
from pathlib import Path

import click

from rootpatch import __version__
from rootpatch.core.observability.logging_config import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="rootpatch")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to rootpatch.yml (default: auto-detect).",
)
@click.option("--mock", is_flag=True, help="Record privileged scripts instead of running them.")
@click.option(
    "--sudo-password", envvar="RP_SUDO_PASSWORD", default="",
    help="Password for privilege.mode=sudo (or RP_SUDO_PASSWORD).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    mock: bool,
    sudo_password: str,
) -> None:
    """rootpatch — patch the macOS system volume and reseal its snapshot."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["mock"] = mock
    ctx.obj["sudo_password"] = sudo_password

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("RP_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("RP_LOG_FILE"),
        log_file_level=os.environ.get("RP_LOG_FILE_LEVEL"),
    )


# ── Register sub-commands from rootpatch/ui/cli/ ───────────────────

from rootpatch.ui.cli.audit import log  # noqa: E402
from rootpatch.ui.cli.kdk import kdk  # noqa: E402
from rootpatch.ui.cli.operations import (  # noqa: E402
    install,
    merge_kdk,
    plan,
    rebuild_cache,
    restart,
    snapshot,
)
from rootpatch.ui.cli.presets import presets  # noqa: E402

cli.add_command(install)
cli.add_command(merge_kdk)
cli.add_command(rebuild_cache)
cli.add_command(snapshot)
cli.add_command(plan)
cli.add_command(restart)
cli.add_command(kdk)
cli.add_command(presets)
cli.add_command(log)


if __name__ == "__main__":
    cli()
