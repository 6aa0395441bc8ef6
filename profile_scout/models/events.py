from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    PLAN_CREATED = "plan_created"
    ITERATION_STARTED = "iteration_started"
    ACTION_PARSED = "action_parsed"
    ACTION_SKIPPED = "action_skipped"
    SEARCH_RESULT = "search_result"
    NAVIGATION_RESULT = "navigation_result"
    FINDING_ACCEPTED = "finding_accepted"
    CONTACT_FOUND = "contact_found"
    FOLLOW_UP_STARTED = "follow_up_started"
    SYNTHESIS_STARTED = "synthesis_started"
    RESEARCH_COMPLETE = "research_complete"
    ERROR = "error"


@dataclass(slots=True)
class ResearchEvent:
    """One step of a research run, as yielded by the orchestrator and logged per job."""

    event: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"event": self.event.value, "data": self.data}
