"""Error taxonomy shared by the scheduler, orchestrator and collaborators."""
from __future__ import annotations


class ProfileScoutError(Exception):
    """Base class for every error raised by this package."""


class ProfileValidationError(ProfileScoutError):
    """Malformed research request. Rejected before queueing, never retried."""

    def __init__(self, message: str, errors: list[dict] | None = None):
        super().__init__(message)
        self.errors = errors or []


class TransientCollaboratorError(ProfileScoutError):
    """A browsing or completion call failed in a way that may succeed on retry."""


class NavigationError(TransientCollaboratorError):
    """A page did not finish loading within its budget."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Navigation to {url} failed: {reason}")
        self.url = url
        self.reason = reason


class ConfigurationError(ProfileScoutError):
    """Settings name something this build cannot use."""


class CompletionError(ProfileScoutError):
    """Non-transient completion failure, fatal to the calling step."""


class SearchError(TransientCollaboratorError):
    """Search provider failed after exhausting its retries."""


class SynthesisContractError(ProfileScoutError):
    """The final write-up did not match the structured profile contract."""


class JobTimeoutError(ProfileScoutError):
    def __init__(self, job_id: str, timeout_seconds: float):
        super().__init__(f"Job {job_id} exceeded its {timeout_seconds:g}s budget")
        self.job_id = job_id
        self.timeout_seconds = timeout_seconds


class StalledJobError(ProfileScoutError):
    def __init__(self, job_id: str, window_seconds: float):
        super().__init__(f"Job {job_id} stalled: no progress within {window_seconds:g}s")
        self.job_id = job_id
        self.window_seconds = window_seconds


class JobNotFoundError(ProfileScoutError):
    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


NON_RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    ProfileValidationError,
    SynthesisContractError,
    StalledJobError,
    ConfigurationError,
)
