"""Tests for navigation strategies and the profile-site flow."""
from unittest.mock import AsyncMock, patch

import pytest

from profile_scout.agents.navigation import (
    NavigationHandler,
    OutcomeKind,
    ProfileSiteStrategy,
    SiteKind,
    classify_url,
    load_page,
)
from profile_scout.errors import NavigationError, TransientCollaboratorError
from profile_scout.models.schemas import ProfileInput
from tests.conftest import FakeBrowserSession

PROFILE_URL = "https://www.linkedin.com/in/alice-smith"
TARGET = ProfileInput(name="Alice Smith", context="Acme Corp")

MATCHING_IDENTITY = {
    "name": "Alice Smith",
    "headline": "Staff Engineer at Acme Corp",
    "experience": "Payments platform",
}
OTHER_IDENTITY = {"name": "Alice Smith", "headline": "Chef", "experience": "Restaurants"}


class TestClassification:
    def test_profile_path_on_recognized_domain(self, settings):
        assert classify_url(PROFILE_URL, settings) is SiteKind.RECOGNIZED_PROFILE
        assert classify_url("https://linkedin.com/in/bob", settings) is SiteKind.RECOGNIZED_PROFILE

    def test_other_pages_are_generic(self, settings):
        assert classify_url("https://www.linkedin.com/company/acme", settings) is SiteKind.GENERIC
        assert classify_url("https://example.com/in/alice", settings) is SiteKind.GENERIC
        assert classify_url("https://notlinkedin.com/in/alice", settings) is SiteKind.GENERIC


class TestLoadPage:
    @pytest.mark.asyncio
    async def test_retries_before_giving_up(self, settings):
        settings.navigation_retry_attempts = 3
        session = FakeBrowserSession(failing_urls=("https://down.example.com",))

        with patch("profile_scout.agents.navigation.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(NavigationError):
                await load_page(session, "https://down.example.com", settings)

        assert session.navigations == ["https://down.example.com"] * 3
        assert [call.args[0] for call in sleep.await_args_list] == [0.25, 0.5]

    @pytest.mark.asyncio
    async def test_returns_final_url_after_redirect(self, settings):
        session = FakeBrowserSession(redirects={"https://a.com": "https://a.com/home"})
        assert await load_page(session, "https://a.com", settings) == "https://a.com/home"


class TestGenericStrategy:
    @pytest.mark.asyncio
    async def test_visit_and_failure(self, settings):
        handler = NavigationHandler(settings)
        session = FakeBrowserSession(failing_urls=("https://down.example.com",))

        ok = await handler.navigate(session, "https://example.com", TARGET)
        failed = await handler.navigate(session, "https://down.example.com", TARGET)

        assert ok.kind is OutcomeKind.VISITED
        assert ok.final_url == "https://example.com"
        assert failed.kind is OutcomeKind.FAILED
        assert "ERR_CONNECTION_REFUSED" in failed.error


class TestProfileSiteStrategy:
    @pytest.mark.asyncio
    async def test_matching_profile_yields_contact(self, settings):
        session = FakeBrowserSession(
            extracts={
                "IdentitySummary": [MATCHING_IDENTITY],
                "ExtractedContact": [{"email": "alice@acme.com", "social": ["https://x.com/alice"]}],
            }
        )
        outcome = await NavigationHandler(settings).navigate(session, PROFILE_URL, TARGET)

        assert outcome.kind is OutcomeKind.VISITED
        assert outcome.site is SiteKind.RECOGNIZED_PROFILE
        assert outcome.match.score == 70
        assert outcome.contact.email == "alice@acme.com"
        assert outcome.contact.social == ["https://x.com/alice"]

    @pytest.mark.asyncio
    async def test_mismatch_is_a_skip_without_contact_lookup(self, settings):
        session = FakeBrowserSession(extracts={"IdentitySummary": [OTHER_IDENTITY]})
        outcome = await NavigationHandler(settings).navigate(session, PROFILE_URL, TARGET)

        assert outcome.kind is OutcomeKind.SKIPPED
        assert outcome.match.is_match is False
        assert outcome.contact is None
        assert [name for _, name in session.extract_calls] == ["IdentitySummary"]

    @pytest.mark.asyncio
    async def test_missing_contact_is_not_an_error(self, settings):
        session = FakeBrowserSession(
            extracts={
                "IdentitySummary": [MATCHING_IDENTITY],
                "ExtractedContact": [TransientCollaboratorError("no json")],
            }
        )
        outcome = await NavigationHandler(settings).navigate(session, PROFILE_URL, TARGET)

        assert outcome.kind is OutcomeKind.VISITED
        assert outcome.contact is None

    @pytest.mark.asyncio
    async def test_empty_contact_is_reported_as_none(self, settings):
        session = FakeBrowserSession(
            extracts={"IdentitySummary": [MATCHING_IDENTITY], "ExtractedContact": [{}]}
        )
        outcome = await NavigationHandler(settings).navigate(session, PROFILE_URL, TARGET)
        assert outcome.contact is None

    @pytest.mark.asyncio
    async def test_redirect_away_from_profile_counts_as_failure(self, settings):
        session = FakeBrowserSession(redirects={PROFILE_URL: "https://www.linkedin.com/authwall"})
        outcome = await NavigationHandler(settings).navigate(session, PROFILE_URL, TARGET)

        assert outcome.kind is OutcomeKind.FAILED
        assert session.extract_calls == []

    @pytest.mark.asyncio
    async def test_cookie_banner_stops_at_first_success(self, settings):
        strategy = ProfileSiteStrategy(settings)
        second = strategy.COOKIE_ATTEMPTS[1]
        session = FakeBrowserSession(action_results={second: True})

        assert await strategy.dismiss_cookie_banner(session) is True
        assert session.actions_performed() == list(strategy.COOKIE_ATTEMPTS[:2])

        # Cached for the rest of the job.
        assert await strategy.dismiss_cookie_banner(session) is True
        assert len(session.actions) == 2

    @pytest.mark.asyncio
    async def test_login_happens_once_per_job(self, settings):
        settings.profile_site_email = "me@example.com"
        settings.profile_site_password = "secret"
        session = FakeBrowserSession(
            default_action_result=True,
            action_redirects={'click button[type="submit"]': "https://www.linkedin.com/feed/"},
            extracts={"IdentitySummary": [MATCHING_IDENTITY], "ExtractedContact": [{}]},
        )
        strategy = ProfileSiteStrategy(settings)
        handler = NavigationHandler(settings, strategies={SiteKind.RECOGNIZED_PROFILE: strategy})

        await handler.navigate(session, PROFILE_URL, TARGET)
        await handler.navigate(session, "https://www.linkedin.com/in/alice-smith-2", TARGET)

        assert strategy.logged_in is True
        assert session.navigations.count(settings.profile_site_login_url) == 1
        fills = [(i, v) for i, v in session.actions if i.startswith("fill")]
        assert fills[0] == (
            'fill input[name="session_key"] with %email%',
            {"email": "me@example.com", "password": "secret"},
        )

    @pytest.mark.asyncio
    async def test_login_that_lands_on_checkpoint_fails_navigation(self, settings):
        settings.profile_site_email = "me@example.com"
        settings.profile_site_password = "secret"
        session = FakeBrowserSession(
            default_action_result=True,
            action_redirects={
                'click button[type="submit"]': "https://www.linkedin.com/checkpoint/challenge"
            },
        )
        outcome = await NavigationHandler(settings).navigate(session, PROFILE_URL, TARGET)

        assert outcome.kind is OutcomeKind.FAILED
        assert "login verification failed" in outcome.error

    @pytest.mark.asyncio
    async def test_no_credentials_skips_login(self, settings):
        session = FakeBrowserSession(extracts={"IdentitySummary": [OTHER_IDENTITY]})
        await NavigationHandler(settings).navigate(session, PROFILE_URL, TARGET)

        assert settings.profile_site_login_url not in session.navigations
        assert not any(i.startswith("fill") for i in session.actions_performed())

    @pytest.mark.asyncio
    async def test_failed_login_is_retried_up_to_the_limit(self, settings):
        settings.profile_site_email = "me@example.com"
        settings.profile_site_password = "secret"
        settings.profile_site_login_attempts = 2
        session = FakeBrowserSession(
            default_action_result=True,
            action_redirects={
                'click button[type="submit"]': "https://www.linkedin.com/checkpoint/challenge"
            },
            extracts={"IdentitySummary": [MATCHING_IDENTITY], "ExtractedContact": [{}]},
        )
        strategy = ProfileSiteStrategy(settings)
        handler = NavigationHandler(settings, strategies={SiteKind.RECOGNIZED_PROFILE: strategy})

        outcomes = [
            await handler.navigate(session, f"{PROFILE_URL}-{i}", TARGET) for i in range(3)
        ]

        assert [o.kind for o in outcomes] == [
            OutcomeKind.FAILED,
            OutcomeKind.FAILED,
            OutcomeKind.VISITED,
        ]
        assert session.navigations.count(settings.profile_site_login_url) == 2
        assert strategy.logged_in is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error", [TransientCollaboratorError("extractor crashed"), TimeoutError()]
    )
    async def test_identity_extraction_error_is_a_failed_visit(self, settings, error):
        session = FakeBrowserSession(extracts={"IdentitySummary": [error]})

        outcome = await NavigationHandler(settings).navigate(session, PROFILE_URL, TARGET)

        assert outcome.kind is OutcomeKind.FAILED
        assert outcome.final_url == PROFILE_URL
        assert "Identity extraction failed" in outcome.error
        assert outcome.contact is None
