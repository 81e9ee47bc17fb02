"""
Privilege boundary base — the contract between executor and elevation.

The executor hands a boundary one rendered shell script per operation
and gets back ``BoundaryResult``.  How elevation is obtained (an
interactive admin prompt, a piped sudo password, nothing at all in
tests) is the boundary's business.

Boundaries NEVER raise — failures are captured in the result.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class BoundaryResult:
    """Outcome of one elevated script run."""

    ok: bool
    output: str | None = None       # combined stdout/stderr, verbatim
    exit_code: int | None = None

    @classmethod
    def success(cls, output: str | None = None) -> BoundaryResult:
        return cls(ok=True, output=output, exit_code=0)

    @classmethod
    def failure(cls, output: str | None, exit_code: int | None = None) -> BoundaryResult:
        return cls(ok=False, output=output, exit_code=exit_code)


class PrivilegeBoundary(ABC):
    """Abstract base class for all elevation mechanisms.

    To add a mechanism:
        1. Subclass PrivilegeBoundary
        2. Implement name, is_available, run
        3. Register it in ``boundary_for_mode``
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier (e.g. 'osascript', 'sudo', 'mock')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the mechanism can be used on this host.  Never raises."""

    @abstractmethod
    def run(self, script: str) -> BoundaryResult:
        """Run ``script`` with administrator rights, blocking until it exits.

        One call means one credential prompt.  MUST never raise.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
