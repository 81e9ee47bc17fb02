"""
Privilege boundaries — how one rendered script gets administrator rights.

    osascript  macOS authentication dialog (default)
    sudo       ``sudo -S -k`` with a piped password
    mock       records scripts, never elevates
"""

from __future__ import annotations

from rootpatch.adapters.privilege.base import BoundaryResult, PrivilegeBoundary
from rootpatch.adapters.privilege.mock import MockBoundary
from rootpatch.adapters.privilege.osascript import OsascriptBoundary
from rootpatch.adapters.privilege.sudo import SudoBoundary


def boundary_for_mode(mode: str, *, password: str = "") -> PrivilegeBoundary:
    """Build the boundary named by ``privilege.mode`` in settings."""
    if mode == "osascript":
        return OsascriptBoundary()
    if mode == "sudo":
        return SudoBoundary(password)
    if mode == "mock":
        return MockBoundary()
    raise ValueError(f"Unknown privilege mode: {mode}")


__all__ = [
    "BoundaryResult",
    "MockBoundary",
    "OsascriptBoundary",
    "PrivilegeBoundary",
    "SudoBoundary",
    "boundary_for_mode",
]
