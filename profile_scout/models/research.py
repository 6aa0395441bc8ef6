from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Union

from profile_scout.models.schemas import ContactInfo


class FindingCategory(StrEnum):
    PROFILE = "profile"
    NEWS = "news"
    ACHIEVEMENT = "achievement"
    GENERAL = "general"


@dataclass(frozen=True, slots=True)
class Finding:
    source: str
    content: str
    confidence: float
    category: FindingCategory = FindingCategory.GENERAL

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must lie in [0, 1], got {self.confidence}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "content": self.content,
            "confidence": self.confidence,
            "category": self.category.value,
        }


@dataclass(frozen=True, slots=True)
class SearchResult:
    url: str
    title: str = ""
    snippet: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"url": self.url, "title": self.title, "snippet": self.snippet}


# --- Actions (one per iteration, never mutated) ---


@dataclass(frozen=True, slots=True)
class Search:
    query: str


@dataclass(frozen=True, slots=True)
class Navigate:
    url: str


@dataclass(frozen=True, slots=True)
class Extract:
    instruction: str


@dataclass(frozen=True, slots=True)
class Observe:
    instruction: str


@dataclass(frozen=True, slots=True)
class Conclude:
    pass


Action = Union[Search, Navigate, Extract, Observe, Conclude]


@dataclass(frozen=True, slots=True)
class ProfileMatch:
    score: float
    is_match: bool
    breakdown: dict[str, float] = field(default_factory=dict)


@dataclass(slots=True)
class IterationRecord:
    """Outcome of one orchestrator iteration: a success payload or a caught error."""

    iteration: int
    action: str
    success: bool
    payload: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


@dataclass
class ResearchState:
    """Mutable state owned by exactly one orchestrator run."""

    plan: str = ""
    iteration: int = 0
    current_url: str | None = None
    navigation_failures: int = 0
    contact: ContactInfo | None = None
    findings: list[Finding] = field(default_factory=list)
    search_results: list[SearchResult] = field(default_factory=list)
    visited_urls: set[str] = field(default_factory=set)
    iteration_log: list[IterationRecord] = field(default_factory=list)
    follow_up_done: bool = False

    @property
    def contact_found(self) -> bool:
        return self.contact is not None

    def record(
        self,
        action: str,
        *,
        success: bool,
        payload: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> IterationRecord:
        entry = IterationRecord(
            iteration=self.iteration,
            action=action,
            success=success,
            payload=dict(payload or {}),
            error=error,
        )
        self.iteration_log.append(entry)
        return entry
