from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class AuthenticatedUser(BaseModel):
    id: str
    email: Optional[str] = None


class AuditRecord(BaseModel):
    """One row per completed call; the full result is kept as JSON."""

    user_id: str
    phase: str
    parsed_result: Dict[str, Any] = Field(default_factory=dict)
    shifts_created: int = 0
    processing_time_ms: int = 0

    def to_row(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "parsed_result": {"phase": self.phase, **self.parsed_result},
            "shifts_created": self.shifts_created,
            "processing_time_ms": self.processing_time_ms,
        }
