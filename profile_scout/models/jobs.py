from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from profile_scout.models.schemas import JobStatusResponse, JobSummary, JobTimestamps, ProfileInput


class JobStatus(StrEnum):
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    STALLED = "stalled"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ResearchJob:
    """One queued unit of research work. Mutated only by the worker executing it."""

    id: str
    profile: ProfileInput
    cache_key: str
    priority: int = 0
    status: JobStatus = JobStatus.WAITING
    progress: int = 0
    attempts: int = 0
    result: dict[str, Any] | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    last_heartbeat: float = 0.0
    events: list[dict[str, Any]] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def timestamps(self) -> JobTimestamps:
        return JobTimestamps(
            created=self.created_at,
            started=self.started_at,
            finished=self.finished_at,
        )

    def to_status(self) -> JobStatusResponse:
        return JobStatusResponse(
            job_id=self.id,
            status=self.status.value,
            priority=self.priority,
            progress=self.progress,
            attempts=self.attempts,
            result=self.result,
            error=self.error,
            timestamps=self.timestamps(),
        )

    def to_summary(self) -> JobSummary:
        return JobSummary(job_id=self.id, status=self.status.value, timestamps=self.timestamps())
