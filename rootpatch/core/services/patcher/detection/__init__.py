"""
L3 Detection — ``__init__.py`` re-exports all detection functions.

These functions READ system state but never WRITE.
"""

from rootpatch.core.services.patcher.detection.kdk import (  # noqa: F401
    KdkDiscovery,
    discover_kdks,
)
from rootpatch.core.services.patcher.detection.volume import VolumeResolver  # noqa: F401
