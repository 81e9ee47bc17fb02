"""
EventLogEntry — one audit/troubleshooting record.

Entries carry a message key plus parameters rather than rendered text,
so a presentation layer can translate them later.  There is no
severity: the key itself says what happened.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class EventLogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    seq: int = 0
    timestamp: str = Field(default_factory=_now_iso)
    key: str = ""                           # empty → plain message in parameters
    parameters: tuple[str, ...] = ()

    @property
    def message(self) -> str:
        """Key and parameters joined for plain-text display."""
        if not self.key:
            return " ".join(self.parameters)
        if not self.parameters:
            return self.key
        return f"{self.key} " + " ".join(self.parameters)
