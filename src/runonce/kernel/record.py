"""Persisted execution record models."""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from runonce.codes import Status


def utc_now() -> str:
    """Current time as an ISO 8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


class ExecutionRecord(BaseModel):
    """State of one changeset as owned by a persist engine.

    Created on first lock, updated on unlock, never deleted by the runner.
    """
    format: str = "runonce.record"
    version: str = "0.1"
    change_set_id: str
    author: str
    status: Status
    lock_date: str = Field(default_factory=utc_now)  # ISO 8601
    status_date: Optional[str] = None  # ISO 8601, set once terminal
    log: List[str] = Field(default_factory=list)
    fingerprint: Optional[str] = None  # sha256 of the action definitions, set once terminal

    model_config = ConfigDict(extra="forbid")

    def stored_status(self) -> Optional["StoredStatus"]:
        """Terminal view of this record, or None while it is RUNNING."""
        if not self.status.is_terminal:
            return None
        return StoredStatus(status=self.status, fingerprint=self.fingerprint)


class StoredStatus(BaseModel):
    """Most recent terminal status of a changeset, as returned by query_status."""
    status: Status
    fingerprint: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="forbid")
