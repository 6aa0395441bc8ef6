"""Tests for the OpenRouter completion client."""
import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from profile_scout.errors import CompletionError, TransientCollaboratorError
from profile_scout.llm_client import (
    CompletionClient,
    backoff_delay,
    extract_json_array,
    extract_json_object,
    get_client,
)


def _response(text: str):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=5),
    )


def _client(create: AsyncMock, **kwargs) -> CompletionClient:
    openai_client = MagicMock()
    openai_client.chat.completions.create = create
    return CompletionClient(openai_client, model="openai/gpt-4o-mini", **kwargs)


def _connection_error() -> openai.APIConnectionError:
    return openai.APIConnectionError(request=httpx.Request("POST", "https://openrouter.ai/api/v1"))


class TestBackoff:
    def test_delay_doubles_and_is_capped(self):
        assert [backoff_delay(a, base=1.0, cap=10.0) for a in (1, 2, 3, 4)] == [2.0, 4.0, 8.0, 10.0]


class TestComplete:
    @pytest.mark.asyncio
    async def test_returns_stripped_text(self):
        create = AsyncMock(return_value=_response("  SEARCH: alice  "))
        text = await _client(create).complete([{"role": "user", "content": "hi"}], 0.2)

        assert text == "SEARCH: alice"
        kwargs = create.await_args.kwargs
        assert kwargs["model"] == "openai/gpt-4o-mini"
        assert kwargs["temperature"] == 0.2

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried_with_backoff(self):
        create = AsyncMock(side_effect=[_connection_error(), _response("ok")])
        with patch("profile_scout.llm_client.asyncio.sleep", new=AsyncMock()) as sleep:
            text = await _client(create, retry_base_delay=1.0, retry_max_delay=10.0).complete([])

        assert text == "ok"
        assert create.await_count == 2
        sleep.assert_awaited_once_with(2.0)

    @pytest.mark.asyncio
    async def test_transient_failures_surface_after_last_attempt(self):
        create = AsyncMock(side_effect=[asyncio.TimeoutError(), _connection_error(), _connection_error()])
        with patch("profile_scout.llm_client.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(TransientCollaboratorError):
                await _client(create, retry_attempts=3).complete([])

        assert create.await_count == 3
        assert [call.args[0] for call in sleep.await_args_list] == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_non_transient_failure_is_not_retried(self):
        create = AsyncMock(side_effect=openai.OpenAIError("invalid request"))
        with pytest.raises(CompletionError):
            await _client(create).complete([])
        assert create.await_count == 1

    @pytest.mark.asyncio
    async def test_empty_choices_yield_empty_text(self):
        create = AsyncMock(return_value=SimpleNamespace(choices=[], usage=None))
        assert await _client(create).complete([]) == ""


def test_get_client_points_at_openrouter(settings):
    with patch("profile_scout.llm_client.openai.AsyncOpenAI") as async_openai:
        settings.openrouter_model = "openai/gpt-4.1"
        client = get_client(settings)

    async_openai.assert_called_once_with(
        api_key="test",
        base_url="https://openrouter.ai/api/v1",
        max_retries=0,
    )
    assert client.model == "openai/gpt-4.1"


class TestJsonHelpers:
    def test_object_inside_code_fence(self):
        assert extract_json_object('```json\n{"a": 1}\n```') == {"a": 1}

    def test_object_with_surrounding_prose(self):
        assert extract_json_object('Here you go: {"a": [1, 2]} hope it helps') == {"a": [1, 2]}

    def test_array(self):
        assert extract_json_array('```\n["q1", "q2"]\n```') == ["q1", "q2"]

    def test_missing_json_raises(self):
        with pytest.raises(json.JSONDecodeError):
            extract_json_object("no json here")
        with pytest.raises(json.JSONDecodeError):
            extract_json_array("no json here")
