"""
L1 Domain — ``__init__.py`` re-exports all pure domain functions.

These functions have NO subprocess calls, NO filesystem access,
NO network calls. Pure input→output.
"""

from rootpatch.core.services.patcher.domain.conflict_policy import (  # noqa: F401
    ConflictAction,
    ConflictDecision,
    decide,
    decide_merge,
    destination_dir_for,
    is_framework,
    join_mount,
)
from rootpatch.core.services.patcher.domain.ordering import ensure_ordering  # noqa: F401
