"""Snapshot models - export/import/backup payloads."""

from datetime import datetime
from typing import Any
from pydantic import BaseModel, Field


class Snapshot(BaseModel):
    """Versioned serialized form of the whole collection."""
    version: str = Field(..., description="Snapshot format version, not checked on import")
    timestamp: datetime = Field(..., description="When the snapshot was taken (UTC)")
    items: list[dict[str, Any]] = Field(default_factory=list, description="Todo records")


class RejectedRecord(BaseModel):
    """An import record that was dropped, and why."""
    index: int
    reasons: list[str] = Field(default_factory=list)


class ImportReport(BaseModel):
    """Outcome of an import."""
    accepted: int = 0
    replaced: int = 0
    rejected: list[RejectedRecord] = Field(default_factory=list)
