from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


# --- Requests ---


class ProfileInput(BaseModel):
    """The research subject as submitted by a caller."""

    name: str = Field(min_length=1)
    context: Optional[str] = None
    interests: Optional[list[str]] = None
    # Queue ordering only; higher runs first. Not part of the cache key.
    priority: int = 0

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("name must be a non-empty string")
        return stripped

    @field_validator("interests")
    @classmethod
    def drop_blank_interests(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        if value is None:
            return None
        return [item.strip() for item in value if item.strip()]


# --- Synthesis contract ---


class ContactInfo(BaseModel):
    email: Optional[str] = None
    phone: Optional[str] = None
    social: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.email or self.phone or self.social)


class ProfileReport(BaseModel):
    """Structured write-up produced by the synthesizer. Contact details come first."""

    contact: ContactInfo = Field(default_factory=ContactInfo)
    summary: str = Field(min_length=1)
    current_role: Optional[str] = None
    expertise: list[str]
    achievements: list[str]
    recent_activity: Optional[str] = None
    talking_points: list[str]


class FindingOut(BaseModel):
    source: str
    content: str
    confidence: float
    category: str


class ResearchResult(BaseModel):
    profile: ProfileReport
    contact: ContactInfo
    sources: list[str]
    findings: list[FindingOut]
    confidence: float
    iterations: int
    stop_reason: str


# --- Responses ---


class JobTimestamps(BaseModel):
    created: datetime
    started: Optional[datetime] = None
    finished: Optional[datetime] = None


class JobSubmitResponse(BaseModel):
    job_id: str = Field(serialization_alias="jobId")
    status: str
    status_url: str = Field(serialization_alias="statusUrl")
    cached: bool = False
    result: Optional[dict[str, Any]] = None


class JobStatusResponse(BaseModel):
    job_id: str = Field(serialization_alias="jobId")
    status: str
    priority: int = 0
    progress: int
    attempts: int
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    timestamps: JobTimestamps


class JobSummary(BaseModel):
    job_id: str = Field(serialization_alias="jobId")
    status: str
    timestamps: JobTimestamps


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class JobListResponse(BaseModel):
    jobs: list[JobSummary]
    pagination: Pagination


class CancelResponse(BaseModel):
    message: str
    job_id: str = Field(serialization_alias="jobId")
