from __future__ import annotations

from typing import Any

from profile_scout.models.events import EventType, ResearchEvent


def plan_created(plan: str) -> ResearchEvent:
    return ResearchEvent(event=EventType.PLAN_CREATED, data={"plan": plan})


def iteration_started(iteration: int, max_iterations: int) -> ResearchEvent:
    return ResearchEvent(
        event=EventType.ITERATION_STARTED,
        data={"iteration": iteration, "max_iterations": max_iterations},
    )


def action_parsed(iteration: int, action: str, **kwargs: Any) -> ResearchEvent:
    return ResearchEvent(
        event=EventType.ACTION_PARSED,
        data={"iteration": iteration, "action": action, **kwargs},
    )


def action_skipped(iteration: int, reason: str, **kwargs: Any) -> ResearchEvent:
    return ResearchEvent(
        event=EventType.ACTION_SKIPPED,
        data={"iteration": iteration, "reason": reason, **kwargs},
    )


def search_result(query: str, results: list[dict], *, new_results: int = 0) -> ResearchEvent:
    return ResearchEvent(
        event=EventType.SEARCH_RESULT,
        data={"query": query, "results": results, "new_results": new_results},
    )


def navigation_result(url: str, outcome: str, **kwargs: Any) -> ResearchEvent:
    return ResearchEvent(
        event=EventType.NAVIGATION_RESULT,
        data={"url": url, "outcome": outcome, **kwargs},
    )


def finding_accepted(source: str, confidence: float, category: str) -> ResearchEvent:
    return ResearchEvent(
        event=EventType.FINDING_ACCEPTED,
        data={"source": source, "confidence": confidence, "category": category},
    )


def contact_found(url: str, contact: dict[str, Any]) -> ResearchEvent:
    return ResearchEvent(event=EventType.CONTACT_FOUND, data={"url": url, "contact": contact})


def follow_up_started(queries: list[str]) -> ResearchEvent:
    return ResearchEvent(event=EventType.FOLLOW_UP_STARTED, data={"queries": queries})


def synthesis_started(findings_count: int) -> ResearchEvent:
    return ResearchEvent(event=EventType.SYNTHESIS_STARTED, data={"findings_count": findings_count})


def research_complete(
    result: dict[str, Any],
    *,
    stop_reason: str,
    runtime_ms: int | None = None,
) -> ResearchEvent:
    data: dict[str, Any] = {"result": result, "stop_reason": stop_reason}
    if runtime_ms is not None:
        data["runtime_ms"] = runtime_ms
    return ResearchEvent(event=EventType.RESEARCH_COMPLETE, data=data)


def error(message: str, agent: str | None = None, **kwargs: Any) -> ResearchEvent:
    data: dict[str, Any] = {"message": message, **kwargs}
    if agent:
        data["agent"] = agent
    return ResearchEvent(event=EventType.ERROR, data=data)
