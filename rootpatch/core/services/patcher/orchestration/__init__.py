"""
L5 Orchestration — ``__init__.py`` re-exports top-level coordinators.

These are the entry points that external code calls.
"""

from rootpatch.core.services.patcher.orchestration.orchestrator import (  # noqa: F401
    OperationState,
    PatchOrchestrator,
)
