"""
L4 Execution — ``__init__.py`` re-exports all execution functions.

These functions WRITE to the system, always through a privilege
boundary, except the read-only host queries.
"""

from rootpatch.core.services.patcher.execution.subprocess_runner import (  # noqa: F401
    run_command,
)
from rootpatch.core.services.patcher.execution.script_render import (  # noqa: F401
    render_applescript,
    render_script,
)
from rootpatch.core.services.patcher.execution.privileged import (  # noqa: F401
    PrivilegedExecutor,
)
