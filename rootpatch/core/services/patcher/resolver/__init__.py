"""
L2 Resolver — ``__init__.py`` re-exports all resolver functions.

These turn requests and presets into concrete step sequences.
"""

from rootpatch.core.services.patcher.resolver.compiler import (  # noqa: F401
    OperationCompiler,
    volume_probe,
)
from rootpatch.core.services.patcher.resolver.presets import (  # noqa: F401
    PresetExpander,
    install_preset_resources,
    load_presets,
)
