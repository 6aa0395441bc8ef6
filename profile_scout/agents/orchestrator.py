from __future__ import annotations

import asyncio
import json
import time
from typing import Any, AsyncGenerator, Awaitable, Callable

from loguru import logger

from profile_scout.agents.action_parser import describe, parse_action
from profile_scout.agents.evidence import EvidenceAggregator
from profile_scout.agents.navigation import NavigationHandler, NavigationOutcome, OutcomeKind
from profile_scout.agents.synthesizer import Synthesizer
from profile_scout.browser.session import BrowserSession
from profile_scout.config import Settings
from profile_scout.errors import ProfileScoutError
from profile_scout.llm_client import CompletionClient, extract_json_array
from profile_scout.models.events import ResearchEvent
from profile_scout.models.extraction import PageFinding
from profile_scout.models.research import (
    Action,
    Extract,
    Finding,
    FindingCategory,
    Navigate,
    Observe,
    ResearchState,
    Search,
    SearchResult,
)
from profile_scout.models.schemas import ProfileInput, ResearchResult
from profile_scout.services import logger as log_service
from profile_scout.services import streaming
from profile_scout.services.prompt_store import render_prompt
from profile_scout.tools import search_provider

SearchFn = Callable[..., Awaitable[list[SearchResult]]]

SEED_QUERY_TEMPLATES = (
    "{name} {context}",
    "{name} portfolio",
    "{name} projects",
    "{name} blog",
    "{name} achievements",
)

STOP_CONCLUDED = "concluded"
STOP_ITERATION_LIMIT = "iteration_limit"
STOP_NAVIGATION_FAILURES = "navigation_failures"

DEFAULT_EXTRACT_INSTRUCTION = "Focus on facts that help describe this person's professional profile."


def seed_queries(target: ProfileInput) -> list[str]:
    queries: list[str] = []
    for template in SEED_QUERY_TEMPLATES:
        query = " ".join(template.format(name=target.name, context=target.context or "").split())
        if query not in queries:
            queries.append(query)
    return queries


class ResearchOrchestrator:
    """Runs the bounded plan -> act -> observe loop for one research job.

    States: planning, iterating, then concluded or aborted; both exits go through
    synthesis. The browser session is owned by the caller and used sequentially.
    Events are yielded as the run progresses; the final result is kept on
    ``self.result``.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        llm: CompletionClient,
        session: BrowserSession,
        job_id: str = "direct",
        navigation: NavigationHandler | None = None,
        synthesizer: Synthesizer | None = None,
        search_fn: SearchFn | None = None,
    ):
        self.settings = settings
        self.llm = llm
        self.session = session
        self.job_id = job_id
        self.navigation = navigation or NavigationHandler(settings)
        self.synthesizer = synthesizer or Synthesizer(
            llm, temperature=settings.synthesis_temperature
        )
        self.search_fn = search_fn or search_provider.search
        self.max_iterations = max(int(settings.max_iterations), 1)
        self.failure_limit = max(int(settings.navigation_failure_limit), 1)
        self.follow_up_query_count = max(int(settings.follow_up_query_count), 1)
        self.state = ResearchState()
        self.evidence = EvidenceAggregator(
            target_name="",
            recognized_domain=settings.profile_site_domain,
            acceptance_threshold=settings.findings_acceptance_threshold,
            findings_cap=settings.findings_cap,
            findings_minimum=settings.findings_minimum,
            results=self.state.search_results,
            findings=self.state.findings,
            visited=self.state.visited_urls,
        )
        self.stop_reason: str | None = None
        self.result: ResearchResult | None = None

    # --- collaborator calls ---

    async def _generate_plan(self, target: ProfileInput) -> str:
        messages = [
            {"role": "system", "content": render_prompt("planner.system_prompt")},
            {
                "role": "user",
                "content": render_prompt(
                    "planner.user_prompt",
                    name=target.name,
                    context=target.context or "(none)",
                    interests=", ".join(target.interests or []) or "(none)",
                ),
            },
        ]
        plan = await self.llm.complete(
            messages, self.settings.planner_temperature, caller="planner"
        )
        return plan or f"Search for {target.name}, visit the best matching profile and find contact details."

    def _directive_messages(self, target: ProfileInput) -> list[dict[str, str]]:
        window = self.evidence.results[-self.settings.prompt_search_results_window :]
        formatted = "\n".join(
            f"- {r.title or '(untitled)'} | {r.url} | {r.snippet[:200]}" for r in window
        )
        return [
            {"role": "system", "content": render_prompt("directive.system_prompt")},
            {
                "role": "user",
                "content": render_prompt(
                    "directive.user_prompt",
                    plan=self.state.plan,
                    name=target.name,
                    context=target.context or "no context given",
                    iteration=self.state.iteration,
                    max_iterations=self.max_iterations,
                    current_url=self.state.current_url or "none",
                    contact_found="yes" if self.state.contact_found else "no",
                    findings_count=len(self.state.findings),
                    visited=", ".join(self.evidence.visited_order) or "none",
                    search_results=formatted or "(no search results yet)",
                ),
            },
        ]

    async def _search(self, query: str) -> tuple[ResearchEvent, int]:
        results = await self.search_fn(query, settings=self.settings, session=self.session)
        added = self.evidence.add_results(query, results)
        event = streaming.search_result(
            query, [r.to_dict() for r in results], new_results=len(added)
        )
        return event, len(added)

    async def _extract_finding(self, instruction: str, target: ProfileInput) -> Finding | None:
        url = self.state.current_url
        if not url:
            raise ProfileScoutError("No page is loaded; navigate before extracting")
        page = await asyncio.wait_for(
            self.session.extract(
                render_prompt(
                    "extract.finding_instruction", name=target.name, instruction=instruction
                ),
                PageFinding,
            ),
            timeout=self.settings.extract_timeout_seconds,
        )
        if not page.content.strip():
            return None
        return Finding(
            source=url,
            content=page.content.strip(),
            confidence=page.confidence,
            category=FindingCategory(page.category),
        )

    def _apply_navigation(self, outcome: NavigationOutcome) -> list[ResearchEvent]:
        """Fold a navigation outcome into state. Only FAILED counts toward the abort limit."""
        events: list[ResearchEvent] = []
        if outcome.kind is OutcomeKind.FAILED:
            self.state.navigation_failures += 1
        elif outcome.kind is OutcomeKind.VISITED:
            self.state.navigation_failures = 0
            self.state.current_url = outcome.final_url or outcome.url
            if outcome.contact is not None and not self.state.contact_found:
                self.state.contact = outcome.contact
                events.append(streaming.contact_found(outcome.url, outcome.contact.model_dump()))
        events.insert(
            0,
            streaming.navigation_result(
                outcome.url,
                outcome.kind.value,
                site=outcome.site.value,
                match=outcome.to_dict().get("match"),
                error=outcome.error,
                navigation_failures=self.state.navigation_failures,
            ),
        )
        return events

    # --- one iteration ---

    async def _dispatch(
        self, action: Action, target: ProfileInput
    ) -> tuple[list[ResearchEvent], dict[str, Any], bool]:
        """Execute one action. Returns (events, record payload, should_stop)."""
        state = self.state

        if isinstance(action, Search):
            event, added = await self._search(action.query)
            return [event], {"query": action.query, "new_results": added}, False

        if isinstance(action, Navigate):
            if self.evidence.is_visited(action.url):
                skipped = streaming.action_skipped(
                    state.iteration, "already visited", url=action.url
                )
                return [skipped], {"url": action.url, "skipped": "already visited"}, False
            self.evidence.mark_visited(action.url)
            outcome = await self.navigation.navigate(self.session, action.url, target)
            events = self._apply_navigation(outcome)
            if state.navigation_failures >= self.failure_limit:
                self.stop_reason = STOP_NAVIGATION_FAILURES
                return events, outcome.to_dict(), True
            return events, outcome.to_dict(), False

        if isinstance(action, Extract):
            finding = await self._extract_finding(action.instruction, target)
            if finding is None:
                return [], {"source": state.current_url, "accepted": False, "empty": True}, False
            accepted = self.evidence.accept(finding)
            events = []
            if accepted:
                events.append(
                    streaming.finding_accepted(
                        finding.source, finding.confidence, finding.category.value
                    )
                )
            payload = {"accepted": accepted, **finding.to_dict()}
            return events, payload, False

        if isinstance(action, Observe):
            elements = await asyncio.wait_for(
                self.session.observe(action.instruction),
                timeout=self.settings.observe_timeout_seconds,
            )
            return [], {"elements": [element.to_dict() for element in elements[:10]]}, False

        # Conclude
        if state.contact_found:
            self.stop_reason = STOP_CONCLUDED
            return [], {"concluded": True}, True
        skipped = streaming.action_skipped(
            state.iteration, "conclude ignored until contact information is found"
        )
        return [skipped], {"concluded": False}, False

    # --- follow-up round ---

    async def _follow_up_queries(self, target: ProfileInput) -> list[str]:
        count = self.follow_up_query_count
        prompt = render_prompt(
            "follow_up.user_prompt",
            name=target.name,
            context=target.context or "no context given",
            findings_count=len(self.state.findings),
            previous_queries=json.dumps(self.evidence.queries),
            count=count,
        )
        raw = await self.llm.complete(
            [{"role": "user", "content": prompt}], self.settings.planner_temperature,
            caller="follow_up",
        )
        try:
            suggested = [q.strip() for q in extract_json_array(raw) if isinstance(q, str) and q.strip()]
        except json.JSONDecodeError:
            logger.warning("Follow-up query reply was not a JSON array; using fallback queries")
            suggested = []
        return (suggested or self._unused_seed_queries(target))[:count]

    def _unused_seed_queries(self, target: ProfileInput) -> list[str]:
        return [q for q in seed_queries(target) if q not in self.evidence.queries]

    async def _follow_up(self, target: ProfileInput) -> AsyncGenerator[ResearchEvent, None]:
        self.state.follow_up_done = True
        try:
            queries = await self._follow_up_queries(target)
        except ProfileScoutError as exc:
            logger.warning(f"Follow-up query generation failed; using fallback queries: {exc}")
            yield streaming.error(str(exc), agent="follow_up")
            queries = self._unused_seed_queries(target)[: self.follow_up_query_count]
        yield streaming.follow_up_started(queries)

        for query in queries:
            try:
                event, _ = await self._search(query)
            except ProfileScoutError as exc:
                logger.warning(f"Follow-up search '{query}' failed: {exc}")
                yield streaming.error(str(exc), agent="search", query=query)
                continue
            yield event

        candidates = self.evidence.ranked(unvisited_only=True)
        for candidate in candidates[: self.settings.follow_up_url_count]:
            if self.evidence.at_cap:
                break
            try:
                self.evidence.mark_visited(candidate.url)
                outcome = await self.navigation.navigate(self.session, candidate.url, target)
                for event in self._apply_navigation(outcome):
                    yield event
                if outcome.kind is not OutcomeKind.VISITED:
                    continue
                finding = await self._extract_finding(DEFAULT_EXTRACT_INSTRUCTION, target)
            except (ProfileScoutError, asyncio.TimeoutError) as exc:
                logger.warning(f"Follow-up visit to {candidate.url} failed: {exc}")
                yield streaming.error(str(exc), agent="follow_up", url=candidate.url)
                continue
            if finding is not None and self.evidence.accept(finding):
                yield streaming.finding_accepted(
                    finding.source, finding.confidence, finding.category.value
                )

    # --- main loop ---

    async def run(self, target: ProfileInput) -> AsyncGenerator[ResearchEvent, None]:
        started = time.monotonic()
        state = self.state
        self.evidence.target_name = target.name

        state.plan = await self._generate_plan(target)
        log_service.log_research_step(self.job_id, "plan", "completed", {"plan": state.plan})
        yield streaming.plan_created(state.plan)

        for query in seed_queries(target)[: self.settings.seed_query_count]:
            try:
                event, _ = await self._search(query)
            except ProfileScoutError as exc:
                logger.warning(f"Seed search '{query}' failed: {exc}")
                yield streaming.error(str(exc), agent="search", query=query)
                continue
            yield event

        while state.iteration < self.max_iterations:
            state.iteration += 1
            yield streaming.iteration_started(state.iteration, self.max_iterations)

            label = "unparsed"
            try:
                directive = await self.llm.complete(
                    self._directive_messages(target),
                    self.settings.planner_temperature,
                    caller="directive",
                )
                action = parse_action(directive)
                if action is None:
                    state.record(label, success=False, error="unparsable directive")
                    log_service.log_research_step(
                        self.job_id, label, "failed", {"directive": directive[:200]}
                    )
                    yield streaming.action_skipped(
                        state.iteration, "unparsable directive", directive=directive[:200]
                    )
                    continue

                label = describe(action)
                yield streaming.action_parsed(state.iteration, label)
                events, payload, should_stop = await self._dispatch(action, target)
            except Exception as exc:
                state.record(label, success=False, error=f"{type(exc).__name__}: {exc}")
                log_service.log_research_step(
                    self.job_id, label, "failed", {"error": str(exc)}
                )
                yield streaming.error(str(exc), agent="orchestrator", iteration=state.iteration)
                continue

            state.record(label, success=True, payload=payload)
            log_service.log_research_step(self.job_id, label, "completed", payload)
            for event in events:
                yield event
            if should_stop:
                break

        if self.stop_reason is None:
            self.stop_reason = STOP_ITERATION_LIMIT
        logger.info(
            f"Research loop for job {self.job_id} stopped after {state.iteration} "
            f"iterations: {self.stop_reason}"
        )

        if self.evidence.needs_follow_up(state.follow_up_done):
            async for event in self._follow_up(target):
                yield event

        yield streaming.synthesis_started(len(state.findings))
        self.result = await self.synthesizer.synthesize(
            target,
            findings=list(state.findings),
            contact=state.contact,
            sources=self.evidence.sources(),
            iterations=state.iteration,
            stop_reason=self.stop_reason,
        )
        yield streaming.research_complete(
            self.result.model_dump(),
            stop_reason=self.stop_reason,
            runtime_ms=int((time.monotonic() - started) * 1000),
        )
