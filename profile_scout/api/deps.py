from __future__ import annotations

from fastapi import Request

from profile_scout.services.context import AppContext
from profile_scout.services.scheduler import JobScheduler


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_scheduler(request: Request) -> JobScheduler:
    return get_context(request).scheduler
