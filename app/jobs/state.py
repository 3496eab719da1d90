from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import StrEnum


class JobStatus(StrEnum):
    IDLE = "idle"
    PENDING = "pending"
    READY = "ready"
    ERROR = "error"


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes (SQLite drops tzinfo) as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class BasePlanJobState:
    """Per-user base plan generation state.

    ``verified`` is only ever set by explicit user confirmation and survives
    starts, retries and resets. ``owner`` names the orchestrator instance
    running a pending job; it is internal and never sent to clients.
    """

    status: JobStatus = JobStatus.IDLE
    job_id: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    verified: bool = False
    owner: str | None = None

    def idle(self, error: str | None = None) -> BasePlanJobState:
        return replace(
            self, status=JobStatus.IDLE, job_id=None, started_at=None, completed_at=None, error=error, owner=None
        )

    def pending(self, job_id: str, now: datetime, owner: str | None = None) -> BasePlanJobState:
        return replace(
            self, status=JobStatus.PENDING, job_id=job_id, started_at=now, completed_at=None, error=None, owner=owner
        )

    def ready(self, now: datetime) -> BasePlanJobState:
        return replace(self, status=JobStatus.READY, completed_at=now, error=None, owner=None)

    def failed(self, error: str, now: datetime) -> BasePlanJobState:
        return replace(self, status=JobStatus.ERROR, completed_at=now, error=error, owner=None)

    def to_dict(self) -> dict[str, object]:
        return {
            "status": str(self.status),
            "jobId": self.job_id,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
            "verified": self.verified,
        }
