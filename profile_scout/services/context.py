from __future__ import annotations

from dataclasses import dataclass

from profile_scout.agents.orchestrator import ResearchOrchestrator
from profile_scout.browser.session import BrowserSession, SessionFactory, playwright_session_factory
from profile_scout.config import Settings
from profile_scout.llm_client import CompletionClient, get_client
from profile_scout.models.jobs import ResearchJob
from profile_scout.services.result_cache import ResultCache
from profile_scout.services.scheduler import JobScheduler


@dataclass
class AppContext:
    """Process-lifetime collaborators, built at startup and torn down at shutdown."""

    settings: Settings
    llm: CompletionClient
    cache: ResultCache
    session_factory: SessionFactory
    scheduler: JobScheduler

    async def start(self) -> None:
        await self.scheduler.start()

    async def close(self) -> None:
        await self.scheduler.shutdown()
        await self.llm.close()


def build_context(
    settings: Settings,
    *,
    llm: CompletionClient | None = None,
    session_factory: SessionFactory | None = None,
) -> AppContext:
    llm = llm or get_client(settings)
    session_factory = session_factory or playwright_session_factory(settings, llm)
    cache = ResultCache(
        max_entries=settings.result_cache_size,
        ttl_seconds=settings.result_cache_ttl_seconds,
    )

    def runner_factory(job: ResearchJob, session: BrowserSession) -> ResearchOrchestrator:
        return ResearchOrchestrator(settings=settings, llm=llm, session=session, job_id=job.id)

    scheduler = JobScheduler(
        settings=settings,
        cache=cache,
        session_factory=session_factory,
        runner_factory=runner_factory,
    )
    return AppContext(
        settings=settings,
        llm=llm,
        cache=cache,
        session_factory=session_factory,
        scheduler=scheduler,
    )
