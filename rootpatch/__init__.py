"""rootpatch — sealed root volume patching orchestrator."""

__version__ = "0.1.0"
