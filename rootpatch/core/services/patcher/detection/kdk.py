"""
L3 Detection — Kernel Debug Kit discovery.

Scans the well-known KDK directory.  A missing directory or zero
matches is a normal, reportable result, never an error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from rootpatch.core.observability.event_log import EventLog
from rootpatch.core.services.patcher.data import constants as C

logger = logging.getLogger(__name__)


@dataclass
class KdkDiscovery:
    """Result of scanning the KDK directory."""

    directory: str
    directory_exists: bool = False
    items: list[str] = field(default_factory=list)
    error: str = ""

    @property
    def found(self) -> bool:
        return bool(self.items)

    def to_dict(self) -> dict:
        return {
            "directory": self.directory,
            "directory_exists": self.directory_exists,
            "items": list(self.items),
            "error": self.error,
            "download_url": C.KDK_DOWNLOAD_URL if not self.items else "",
        }


def is_kdk_entry(path: Path) -> bool:
    return path.suffix == C.KDK_EXTENSION or C.KDK_NAME_MARKER in path.name


def discover_kdks(
    kdk_dir: Path | str = C.KDK_DIR,
    *,
    event_log: EventLog | None = None,
) -> KdkDiscovery:
    """List KDK-like entries in ``kdk_dir``, sorted by path."""
    directory = Path(kdk_dir)
    result = KdkDiscovery(directory=str(directory))

    def _log(key: str, *params: str) -> None:
        if event_log is not None:
            event_log.append(key, *params)

    if not directory.is_dir():
        _log("warning_kdk_dir_doesnt_exist", str(directory))
        return result

    result.directory_exists = True
    try:
        entries = list(directory.iterdir())
    except OSError as e:
        logger.warning("Cannot read KDK directory %s: %s", directory, e)
        result.error = str(e)
        _log("error_cant_read_kdk_dir", str(e))
        return result

    result.items = sorted(str(p) for p in entries if is_kdk_entry(p))
    if result.items:
        _log("found", f"{len(result.items)} KDK")
    else:
        _log("warning_no_kdk", str(directory))
    return result
