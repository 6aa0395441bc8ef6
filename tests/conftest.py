"""Shared fakes: a scripted completion client, an in-memory browser session, a canned search."""
from __future__ import annotations

import json
from typing import Any

import pytest

from profile_scout.browser.session import ElementDescription
from profile_scout.config import Settings
from profile_scout.errors import NavigationError
from profile_scout.models.research import SearchResult
from profile_scout.models.schemas import ContactInfo, ProfileReport, ResearchResult

VALID_REPORT = {
    "contact": {"email": None, "phone": None, "social": []},
    "summary": "Alice Smith is a platform engineer at Acme Corp.",
    "current_role": "Staff Engineer, Acme Corp",
    "expertise": ["distributed systems", "python"],
    "achievements": ["Led the Acme payments migration"],
    "recent_activity": "Spoke at PyCon about async services",
    "talking_points": ["Ask about the payments migration"],
}


def make_result(**overrides: Any) -> ResearchResult:
    values: dict[str, Any] = {
        "profile": ProfileReport.model_validate(VALID_REPORT),
        "contact": ContactInfo(),
        "sources": [],
        "findings": [],
        "confidence": 0.5,
        "iterations": 1,
        "stop_reason": "concluded",
    }
    values.update(overrides)
    return ResearchResult(**values)


class FakeCompletionClient:
    """Replies are scripted per caller; each queue is consumed in order, then ``defaults`` apply."""

    def __init__(
        self,
        scripted: dict[str, list[Any]] | None = None,
        defaults: dict[str, str] | None = None,
    ):
        self.scripted = {caller: list(items) for caller, items in (scripted or {}).items()}
        self.defaults = {
            "planner": "1. Search the web\n2. Visit the profile\n3. Find contact details",
            "synthesizer": json.dumps(VALID_REPORT),
            "follow_up": "[]",
            **(defaults or {}),
        }
        self.calls: list[tuple[str, list[dict[str, str]], float]] = []
        self.closed = False

    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        *,
        caller: str = "completion",
    ) -> str:
        self.calls.append((caller, messages, temperature))
        queue = self.scripted.get(caller)
        if queue:
            item = queue.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item
        return self.defaults.get(caller, "")

    def calls_for(self, caller: str) -> list[list[dict[str, str]]]:
        return [messages for name, messages, _ in self.calls if name == caller]

    async def close(self) -> None:
        self.closed = True


class FakeBrowserSession:
    """In-memory page state.

    ``extracts`` maps a schema class name to replies: dicts are validated against the
    schema, exceptions are raised, and the last reply repeats once the list runs out.
    """

    def __init__(
        self,
        *,
        extracts: dict[str, list[Any]] | None = None,
        failing_urls: tuple[str, ...] = (),
        redirects: dict[str, str] | None = None,
        action_results: dict[str, bool] | None = None,
        action_redirects: dict[str, str] | None = None,
        default_action_result: bool = False,
        elements: list[ElementDescription] | None = None,
    ):
        self.extracts = {name: list(items) for name, items in (extracts or {}).items()}
        self.failing_urls = set(failing_urls)
        self.redirects = redirects or {}
        self.action_results = action_results or {}
        self.action_redirects = action_redirects or {}
        self.default_action_result = default_action_result
        self.elements = elements or []
        self.current_url: str | None = None
        self.initialized = False
        self.closed = False
        self.navigations: list[str] = []
        self.actions: list[tuple[str, dict[str, str] | None]] = []
        self.extract_calls: list[tuple[str, str]] = []
        self.observe_error: Exception | None = None

    async def initialize(self) -> None:
        self.initialized = True

    async def close(self) -> None:
        self.closed = True

    async def navigate(self, url: str, *, timeout: float | None = None) -> str:
        self.navigations.append(url)
        if url in self.failing_urls:
            raise NavigationError(url, "net::ERR_CONNECTION_REFUSED")
        self.current_url = self.redirects.get(url, url)
        return self.current_url

    async def wait_for_quiescence(self, *, timeout: float | None = None) -> bool:
        return True

    async def perform_action(
        self,
        instruction: str,
        variables: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> bool:
        self.actions.append((instruction, variables))
        performed = self.action_results.get(instruction, self.default_action_result)
        if performed and instruction in self.action_redirects:
            self.current_url = self.action_redirects[instruction]
        return performed

    async def extract(self, instruction: str, schema: Any, *, timeout: float | None = None) -> Any:
        self.extract_calls.append((instruction, schema.__name__))
        replies = self.extracts.get(schema.__name__)
        if not replies:
            return schema()
        item = replies.pop(0) if len(replies) > 1 else replies[0]
        if isinstance(item, BaseException):
            raise item
        return schema.model_validate(item)

    async def observe(
        self, instruction: str, filters: dict[str, str] | None = None
    ) -> list[ElementDescription]:
        if self.observe_error is not None:
            raise self.observe_error
        return list(self.elements)

    def actions_performed(self) -> list[str]:
        return [instruction for instruction, _ in self.actions]


class FakeSearch:
    """Stands in for ``search_provider.search``; unknown queries return no results."""

    def __init__(self, results: dict[str, list[SearchResult]] | None = None):
        self.results = results or {}
        self.queries: list[str] = []

    async def __call__(self, query: str, *, settings: Settings, session: Any = None) -> list[SearchResult]:
        self.queries.append(query)
        return list(self.results.get(query, []))


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        openrouter_api_key="test",
        brave_api_key="brave-key",
        search_delay_seconds=0.0,
        navigation_retry_attempts=1,
        profile_site_email="",
        profile_site_password="",
        max_iterations=6,
        job_backoff_delay_seconds=0.0,
        sweep_interval_seconds=3600.0,
        stall_check_interval_seconds=3600.0,
        log_dir=str(tmp_path / "logs"),
    )


@pytest.fixture
def llm() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture
def session() -> FakeBrowserSession:
    return FakeBrowserSession()
