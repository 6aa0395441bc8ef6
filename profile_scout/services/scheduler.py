"""In-process job queue hosting research runs.

Workers pull job ids from an asyncio priority queue (higher priority first,
then submission order), one job at a time per slot. Each attempt races the
research run against the job deadline and a stall signal raised by the
watchdog; the browser session created for an attempt is closed before the job
leaves that attempt, whatever the outcome.
"""
from __future__ import annotations

import asyncio
import itertools
import time
import uuid
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Protocol

from loguru import logger
from pydantic import ValidationError

from profile_scout.browser.session import BrowserSession, SessionFactory
from profile_scout.config import Settings
from profile_scout.errors import (
    NON_RETRYABLE_ERRORS,
    JobNotFoundError,
    JobTimeoutError,
    ProfileScoutError,
    ProfileValidationError,
    StalledJobError,
)
from profile_scout.models.events import EventType, ResearchEvent
from profile_scout.models.jobs import JobStatus, ResearchJob, utc_now
from profile_scout.models.schemas import ProfileInput, ResearchResult
from profile_scout.services import logger as log_service
from profile_scout.services.result_cache import ResultCache, cache_key


class ResearchRunner(Protocol):
    result: ResearchResult | None

    def run(self, target: ProfileInput) -> AsyncIterator[ResearchEvent]: ...


RunnerFactory = Callable[[ResearchJob, BrowserSession], ResearchRunner]


@dataclass(slots=True)
class SubmitOutcome:
    job_id: str
    status: str
    cached: bool = False
    result: dict[str, Any] | None = None


def retry_delay(attempt: int, *, backoff_type: str, delay: float) -> float:
    """Pause before the attempt that follows ``attempt`` (1-based)."""
    if backoff_type.lower().strip() == "fixed":
        return delay
    return delay * (2 ** (attempt - 1))


class JobScheduler:
    def __init__(
        self,
        *,
        settings: Settings,
        cache: ResultCache,
        session_factory: SessionFactory,
        runner_factory: RunnerFactory,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.cache = cache
        self.session_factory = session_factory
        self.runner_factory = runner_factory
        self._clock = clock
        self._jobs: dict[str, ResearchJob] = {}
        self._queue: asyncio.PriorityQueue[tuple[int, int, str]] = asyncio.PriorityQueue()
        self._submission_order = itertools.count()
        self._stall_flags: dict[str, asyncio.Event] = {}
        self._signals: dict[str, asyncio.Event] = {}
        self._event_seq: dict[str, int] = {}
        self._tasks: list[asyncio.Task[None]] = []

    # --- lifecycle ---

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def start(self) -> None:
        if self.is_running:
            return
        slots = max(int(self.settings.worker_slots), 1)
        for slot in range(slots):
            self._tasks.append(asyncio.create_task(self._worker(slot), name=f"research-worker-{slot}"))
        self._tasks.append(asyncio.create_task(self._watchdog_loop(), name="stall-watchdog"))
        self._tasks.append(asyncio.create_task(self._sweep_loop(), name="retention-sweep"))
        log_service.log_event("scheduler_started", f"Job scheduler started with {slots} worker slot(s)")

    async def shutdown(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        log_service.log_event("scheduler_stopped", "Job scheduler stopped")

    # --- boundary operations ---

    async def submit(self, payload: ProfileInput | dict[str, Any]) -> SubmitOutcome:
        """Validate and enqueue a request, or answer it from the result cache."""
        if isinstance(payload, ProfileInput):
            profile = payload
        else:
            try:
                profile = ProfileInput.model_validate(payload)
            except ValidationError as exc:
                raise ProfileValidationError(
                    "Invalid research request", errors=exc.errors(include_url=False)
                ) from exc

        key = cache_key(profile)
        cached = await self.cache.get(key)
        if cached is not None:
            log_service.log_job_event(cached.job_id, "cache_hit", "completed")
            return SubmitOutcome(
                job_id=cached.job_id,
                status=JobStatus.COMPLETED.value,
                cached=True,
                result=cached.result,
            )

        job = ResearchJob(
            id=uuid.uuid4().hex, profile=profile, cache_key=key, priority=profile.priority
        )
        self._jobs[job.id] = job
        await self._queue.put((-job.priority, next(self._submission_order), job.id))
        log_service.log_job_event(
            job.id, "queued", job.status.value, {"name": profile.name, "priority": job.priority}
        )
        return SubmitOutcome(job_id=job.id, status="processing")

    def get(self, job_id: str) -> ResearchJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(
        self,
        *,
        status: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[ResearchJob], int]:
        jobs = sorted(self._jobs.values(), key=lambda job: job.created_at, reverse=True)
        if status:
            jobs = [job for job in jobs if job.status.value == status]
        start = (max(page, 1) - 1) * limit
        return jobs[start : start + limit], len(jobs)

    async def delete(self, job_id: str) -> ResearchJob:
        """Forget a job and its cached result. An active attempt is left to finish on its own."""
        job = self._jobs.pop(job_id, None)
        if job is None:
            raise JobNotFoundError(job_id)
        await self.cache.delete_job(job_id)
        self._event_seq.pop(job_id, None)
        self._notify(job_id)
        log_service.log_job_event(job_id, "deleted", job.status.value)
        return job

    async def stream(self, job_id: str, *, poll_seconds: float = 15.0) -> AsyncIterator[dict[str, Any]]:
        """Yield a job's logged events, then follow new ones until it finishes."""
        last_seq = 0
        while True:
            signal = self._signals.setdefault(job_id, asyncio.Event())
            job = self.get(job_id)
            for entry in list(job.events):
                if entry["seq"] > last_seq:
                    last_seq = entry["seq"]
                    yield entry
            if job.is_terminal:
                return
            try:
                await asyncio.wait_for(signal.wait(), timeout=poll_seconds)
            except asyncio.TimeoutError:
                continue

    # --- housekeeping ---

    async def sweep(self) -> int:
        """Drop finished jobs past the retention window or beyond the keep-last counts."""
        now = utc_now()
        retention = self.settings.job_retention_seconds
        removed: list[str] = []
        for status, keep in (
            (JobStatus.COMPLETED, self.settings.job_keep_completed),
            (JobStatus.FAILED, self.settings.job_keep_failed),
        ):
            finished = sorted(
                (job for job in self._jobs.values() if job.status is status),
                key=lambda job: job.finished_at or job.created_at,
                reverse=True,
            )
            for index, job in enumerate(finished):
                age = (now - (job.finished_at or job.created_at)).total_seconds()
                if index >= keep or age > retention:
                    removed.append(job.id)
        for job_id in removed:
            self._jobs.pop(job_id, None)
            self._event_seq.pop(job_id, None)
            self._signals.pop(job_id, None)
        purged = await self.cache.purge_expired()
        if removed or purged:
            log_service.log_event(
                "retention_sweep",
                f"Removed {len(removed)} job(s), purged {purged} cache entr(ies)",
            )
        return len(removed)

    def check_stalls(self) -> list[str]:
        """Flag active jobs whose last heartbeat is older than the stall window."""
        now = self._clock()
        stalled: list[str] = []
        for job in list(self._jobs.values()):
            if job.status is not JobStatus.ACTIVE:
                continue
            if now - job.last_heartbeat <= self.settings.stall_window_seconds:
                continue
            job.status = JobStatus.STALLED
            flag = self._stall_flags.get(job.id)
            if flag is not None:
                flag.set()
            stalled.append(job.id)
            log_service.log_job_event(
                job.id, "stalled", job.status.value, {"silent_seconds": round(now - job.last_heartbeat, 1)}
            )
        return stalled

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.sweep_interval_seconds)
            try:
                await self.sweep()
            except Exception as exc:
                logger.error(f"Retention sweep failed: {exc}")

    async def _watchdog_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.stall_check_interval_seconds)
            self.check_stalls()

    # --- execution ---

    def _notify(self, job_id: str) -> None:
        signal = self._signals.pop(job_id, None)
        if signal is not None:
            signal.set()

    def heartbeat(self, job: ResearchJob) -> None:
        job.last_heartbeat = self._clock()

    def record_event(self, job: ResearchJob, event: ResearchEvent) -> None:
        """Every event is a heartbeat, moves progress forward and lands in the bounded log."""
        self.heartbeat(job)
        job.progress = max(job.progress, self._progress_for(event))
        seq = self._event_seq.get(job.id, 0) + 1
        self._event_seq[job.id] = seq
        job.events.append({"seq": seq, "timestamp": utc_now().isoformat(), **event.to_dict()})
        overflow = len(job.events) - max(int(self.settings.job_event_log_size), 1)
        if overflow > 0:
            del job.events[:overflow]
        self._notify(job.id)

    def _progress_for(self, event: ResearchEvent) -> int:
        if event.event is EventType.PLAN_CREATED:
            return 5
        if event.event is EventType.ITERATION_STARTED:
            iteration = int(event.data.get("iteration", 0))
            ceiling = max(int(event.data.get("max_iterations", 1)), 1)
            return min(10 + int(80 * iteration / ceiling), 90)
        if event.event is EventType.FOLLOW_UP_STARTED:
            return 90
        if event.event is EventType.SYNTHESIS_STARTED:
            return 95
        return 0

    async def _worker(self, slot: int) -> None:
        while True:
            _, _, job_id = await self._queue.get()
            try:
                job = self._jobs.get(job_id)
                if job is None or job.status is not JobStatus.WAITING:
                    continue
                await self._execute(job)
            except Exception as exc:
                logger.error(f"Worker {slot} crashed while handling job {job_id}: {exc}")
            finally:
                self._queue.task_done()

    async def _execute(self, job: ResearchJob) -> None:
        job.status = JobStatus.ACTIVE
        job.started_at = utc_now()
        attempts = max(int(self.settings.job_attempts), 1)
        log_service.log_job_event(job.id, "started", job.status.value)

        for attempt in range(1, attempts + 1):
            job.attempts = attempt
            job.status = JobStatus.ACTIVE
            self.heartbeat(job)
            try:
                result = await self._run_with_deadline(job)
            except Exception as exc:
                final = isinstance(exc, NON_RETRYABLE_ERRORS) or attempt == attempts
                log_service.log_job_event(
                    job.id,
                    "attempt_failed",
                    "failed" if final else "retrying",
                    {"attempt": attempt, "of": attempts},
                    error=f"{type(exc).__name__}: {exc}",
                )
                if final:
                    self._finish(job, JobStatus.FAILED, error=str(exc))
                    return
                await asyncio.sleep(
                    retry_delay(
                        attempt,
                        backoff_type=self.settings.job_backoff_type,
                        delay=self.settings.job_backoff_delay_seconds,
                    )
                )
                continue

            self._finish(job, JobStatus.COMPLETED, result=result)
            if job.id in self._jobs:
                await self.cache.set(job.cache_key, job.id, result)
            return

    async def _run_with_deadline(self, job: ResearchJob) -> dict[str, Any]:
        stalled = asyncio.Event()
        self._stall_flags[job.id] = stalled
        attempt = asyncio.create_task(self._run_attempt(job), name=f"research-{job.id}")
        stall_wait = asyncio.create_task(stalled.wait())
        try:
            done, _ = await asyncio.wait(
                {attempt, stall_wait},
                timeout=self.settings.job_timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            stall_wait.cancel()
            if not attempt.done():
                attempt.cancel()
                # The attempt closes its session while unwinding; wait for that.
                await asyncio.gather(attempt, return_exceptions=True)
            self._stall_flags.pop(job.id, None)

        if attempt in done:
            return attempt.result()
        if stalled.is_set():
            raise StalledJobError(job.id, self.settings.stall_window_seconds)
        raise JobTimeoutError(job.id, self.settings.job_timeout_seconds)

    async def _run_attempt(self, job: ResearchJob) -> dict[str, Any]:
        session = self.session_factory()
        try:
            await session.initialize()
            runner = self.runner_factory(job, session)
            async for event in runner.run(job.profile):
                self.record_event(job, event)
            if runner.result is None:
                raise ProfileScoutError(f"Research for job {job.id} finished without a result")
            return runner.result.model_dump()
        finally:
            await session.close()

    def _finish(
        self,
        job: ResearchJob,
        status: JobStatus,
        *,
        result: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        job.status = status
        job.finished_at = utc_now()
        job.result = result
        job.error = error
        if status is JobStatus.COMPLETED:
            job.progress = 100
        log_service.log_job_event(job.id, "finished", status.value, error=error)
        self._notify(job.id)
