"""Schemas handed to the browsing collaborator's ``extract`` capability."""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator


class PageFinding(BaseModel):
    content: str = ""
    confidence: float = 0.0
    category: Literal["profile", "news", "achievement", "general"] = "general"

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: object) -> float:
        try:
            number = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.0
        return min(max(number, 0.0), 1.0)

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, value: object) -> str:
        lowered = str(value or "").strip().lower()
        if lowered in ("profile", "news", "achievement", "general"):
            return lowered
        return "general"


class IdentitySummary(BaseModel):
    name: str = ""
    headline: str = ""
    experience: str = ""

    @property
    def narrative(self) -> str:
        return f"{self.headline} {self.experience}".strip()


class ExtractedContact(BaseModel):
    email: str | None = None
    phone: str | None = None
    social: list[str] = Field(default_factory=list)


class ExtractedSearchResult(BaseModel):
    url: str
    title: str = ""
    snippet: str = ""


class SearchResultsPage(BaseModel):
    results: list[ExtractedSearchResult] = Field(default_factory=list)
