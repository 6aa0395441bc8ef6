from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol
from urllib.parse import urlparse

from loguru import logger

from profile_scout.agents.verification_agent import score_profile_match
from profile_scout.browser.session import BrowserSession
from profile_scout.config import Settings
from profile_scout.errors import NavigationError, TransientCollaboratorError
from profile_scout.models.extraction import ExtractedContact, IdentitySummary
from profile_scout.models.research import ProfileMatch
from profile_scout.models.schemas import ContactInfo, ProfileInput
from profile_scout.services.prompt_store import render_prompt
from profile_scout.tools import web_utils


class SiteKind(StrEnum):
    RECOGNIZED_PROFILE = "recognized_profile"
    GENERIC = "generic"


class OutcomeKind(StrEnum):
    VISITED = "visited"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True)
class NavigationOutcome:
    kind: OutcomeKind
    url: str
    site: SiteKind
    final_url: str | None = None
    match: ProfileMatch | None = None
    identity: IdentitySummary | None = None
    contact: ContactInfo | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "outcome": self.kind.value,
            "url": self.url,
            "site": self.site.value,
            "final_url": self.final_url,
        }
        if self.match is not None:
            data["match"] = {
                "score": self.match.score,
                "is_match": self.match.is_match,
                "breakdown": self.match.breakdown,
            }
        if self.contact is not None:
            data["contact"] = self.contact.model_dump()
        if self.error:
            data["error"] = self.error
        return data


def classify_url(url: str, settings: Settings) -> SiteKind:
    """Recognized profile pages live on the gated domain under the profile path marker."""
    if web_utils.is_on_domain(url, settings.profile_site_domain):
        if settings.profile_site_path_marker in urlparse(url).path:
            return SiteKind.RECOGNIZED_PROFILE
    return SiteKind.GENERIC


async def load_page(session: BrowserSession, url: str, settings: Settings) -> str:
    """Navigate with retry and wait for the page to settle.

    Raises NavigationError once every attempt has failed or timed out.
    """
    attempts = max(int(settings.navigation_retry_attempts), 1)
    budget = settings.navigation_timeout_seconds
    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            final_url = await asyncio.wait_for(session.navigate(url, timeout=budget), timeout=budget)
        except (NavigationError, asyncio.TimeoutError) as exc:
            last_error = exc
            logger.debug(f"Navigation attempt {attempt}/{attempts} to {url} failed: {exc}")
            if attempt < attempts:
                await asyncio.sleep(min(0.25 * attempt, 1.0))
            continue
        if not await session.wait_for_quiescence(timeout=settings.quiescence_timeout_seconds):
            logger.debug(f"{url} loaded but never went quiet; continuing with current content")
        return session.current_url or final_url
    reason = "timed out" if isinstance(last_error, asyncio.TimeoutError) else str(last_error)
    raise NavigationError(url, reason)


class NavigationStrategy(Protocol):
    site: SiteKind

    async def visit(
        self, session: BrowserSession, url: str, target: ProfileInput
    ) -> NavigationOutcome: ...


class GenericPageStrategy:
    site = SiteKind.GENERIC

    def __init__(self, settings: Settings):
        self.settings = settings

    async def visit(
        self, session: BrowserSession, url: str, target: ProfileInput
    ) -> NavigationOutcome:
        try:
            final_url = await load_page(session, url, self.settings)
        except NavigationError as exc:
            return NavigationOutcome(OutcomeKind.FAILED, url, self.site, error=str(exc))
        return NavigationOutcome(OutcomeKind.VISITED, url, self.site, final_url=final_url)


class ProfileSiteStrategy:
    """Session-gated profile pages: login, consent banner, identity check, contact details.

    One instance lives for one job. Banner dismissal happens once; login is retried on later
    visits until it succeeds or ``profile_site_login_attempts`` is used up.
    """

    site = SiteKind.RECOGNIZED_PROFILE

    COOKIE_ATTEMPTS = (
        'click button[action-type="ACCEPT_COOKIES"]',
        'click #cookie-policy-banner button[type="submit"]',
        'click button:has-text("Accept All Cookies")',
        'click button:has-text("Accept")',
        'click [aria-label="Accept cookies"]',
        'click .cookie-banner button:has-text("Accept")',
    )
    LOGIN_FORM_STEPS = (
        'fill input[name="session_key"] with %email%',
        'fill input[name="session_password"] with %password%',
        'click button[type="submit"]',
    )
    CONTACT_PANEL_ATTEMPTS = (
        'click a[href*="overlay/contact-info"]',
        'click button:has-text("Contact info")',
    )
    LOGIN_BLOCKERS = ("/login", "/checkpoint", "/uas/login")

    def __init__(self, settings: Settings):
        self.settings = settings
        self.logged_in = False
        self.login_failures = 0
        self.credentials_missing = False
        self.cookies_dismissed = False

    async def dismiss_cookie_banner(self, session: BrowserSession) -> bool:
        if self.cookies_dismissed:
            return True
        for instruction in self.COOKIE_ATTEMPTS:
            if await session.perform_action(
                instruction, timeout=self.settings.cookie_attempt_timeout_seconds
            ):
                self.cookies_dismissed = True
                logger.debug(f"Dismissed consent banner via {instruction}")
                return True
        return False

    async def login(self, session: BrowserSession) -> None:
        if self.logged_in or self.credentials_missing:
            return
        if self.login_failures >= self.settings.profile_site_login_attempts:
            return

        email, password = self.settings.profile_site_email, self.settings.profile_site_password
        if not email or not password:
            self.credentials_missing = True
            logger.warning("Profile site credentials are not configured; visiting without login")
            return

        try:
            await self._submit_login(session, email, password)
        except NavigationError:
            self.login_failures += 1
            raise

        self.logged_in = True
        # Optional onboarding prompt shown right after login.
        await session.perform_action('click button:has-text("Skip")', timeout=5.0)
        logger.info("Profile site login successful")

    async def _submit_login(self, session: BrowserSession, email: str, password: str) -> None:
        login_url = self.settings.profile_site_login_url
        await load_page(session, login_url, self.settings)
        await self.dismiss_cookie_banner(session)

        variables = {"email": email, "password": password}
        for step in self.LOGIN_FORM_STEPS:
            if not await session.perform_action(step, variables):
                raise NavigationError(login_url, f"login step failed: {step.split(' with ')[0]}")
        await session.wait_for_quiescence(timeout=self.settings.navigation_timeout_seconds)

        landed = (session.current_url or "").lower()
        if any(marker in landed for marker in self.LOGIN_BLOCKERS):
            raise NavigationError(login_url, "login verification failed")

    async def extract_contact(self, session: BrowserSession) -> ContactInfo | None:
        """Best effort. No contact data is a normal outcome, not an error."""
        for instruction in self.CONTACT_PANEL_ATTEMPTS:
            if await session.perform_action(
                instruction, timeout=self.settings.cookie_attempt_timeout_seconds
            ):
                await session.wait_for_quiescence(timeout=self.settings.cookie_attempt_timeout_seconds)
                break
        try:
            extracted = await asyncio.wait_for(
                session.extract(render_prompt("extract.contact_instruction"), ExtractedContact),
                timeout=self.settings.extract_timeout_seconds,
            )
        except (TransientCollaboratorError, asyncio.TimeoutError) as exc:
            logger.info(f"No contact information extracted: {exc}")
            return None
        contact = ContactInfo(
            email=extracted.email or None,
            phone=extracted.phone or None,
            social=[link for link in extracted.social if link],
        )
        return None if contact.is_empty() else contact

    async def visit(
        self, session: BrowserSession, url: str, target: ProfileInput
    ) -> NavigationOutcome:
        try:
            await self.login(session)
            final_url = await load_page(session, url, self.settings)
        except NavigationError as exc:
            return NavigationOutcome(OutcomeKind.FAILED, url, self.site, error=str(exc))
        await self.dismiss_cookie_banner(session)

        if self.settings.profile_site_path_marker not in (final_url or ""):
            return NavigationOutcome(
                OutcomeKind.FAILED,
                url,
                self.site,
                final_url=final_url,
                error="Failed to load profile page",
            )

        try:
            identity = await asyncio.wait_for(
                session.extract(render_prompt("extract.identity_instruction"), IdentitySummary),
                timeout=self.settings.extract_timeout_seconds,
            )
        except (TransientCollaboratorError, asyncio.TimeoutError) as exc:
            return NavigationOutcome(
                OutcomeKind.FAILED,
                url,
                self.site,
                final_url=final_url,
                error=f"Identity extraction failed: {str(exc) or type(exc).__name__}",
            )
        match = score_profile_match(identity, target)
        if not match.is_match:
            logger.info(f"Skipping profile {url}: match score {match.score} below threshold")
            return NavigationOutcome(
                OutcomeKind.SKIPPED,
                url,
                self.site,
                final_url=final_url,
                match=match,
                identity=identity,
            )

        contact = await self.extract_contact(session)
        return NavigationOutcome(
            OutcomeKind.VISITED,
            url,
            self.site,
            final_url=final_url,
            match=match,
            identity=identity,
            contact=contact,
        )


@dataclass
class NavigationHandler:
    """Executes Navigate actions by picking a strategy from the URL's classification."""

    settings: Settings
    strategies: dict[SiteKind, NavigationStrategy] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.strategies.setdefault(SiteKind.GENERIC, GenericPageStrategy(self.settings))
        self.strategies.setdefault(
            SiteKind.RECOGNIZED_PROFILE, ProfileSiteStrategy(self.settings)
        )

    def classify(self, url: str) -> SiteKind:
        return classify_url(url, self.settings)

    async def navigate(
        self, session: BrowserSession, url: str, target: ProfileInput
    ) -> NavigationOutcome:
        site = self.classify(url)
        outcome = await self.strategies[site].visit(session, url, target)
        logger.debug(f"Navigation {site.value} {url} -> {outcome.kind.value}")
        return outcome
