"""OpenRouter completion client with retry for transient failures."""
from __future__ import annotations

import asyncio
import json
import time
from typing import Any

import openai

from profile_scout.config import Settings
from profile_scout.errors import CompletionError, TransientCollaboratorError
from profile_scout.services import logger as log_service

TRANSIENT_OPENAI_ERRORS: tuple[type[Exception], ...] = (
    openai.APIConnectionError,  # includes APITimeoutError
    openai.RateLimitError,
    openai.InternalServerError,
    asyncio.TimeoutError,
)

Message = dict[str, str]


def backoff_delay(attempt: int, *, base: float, cap: float) -> float:
    """Delay before the retry that follows ``attempt`` (1-based)."""
    return min(base * (2**attempt), cap)


class CompletionClient:
    """Thin wrapper over the OpenAI-compatible chat API exposed by OpenRouter."""

    def __init__(
        self,
        openai_client: Any,
        *,
        model: str,
        max_tokens: int = 1500,
        timeout_seconds: float = 30.0,
        retry_attempts: int = 3,
        retry_base_delay: float = 1.0,
        retry_max_delay: float = 10.0,
    ):
        self._client = openai_client
        self.model = model
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds
        self.retry_attempts = max(int(retry_attempts), 1)
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay

    async def complete(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        *,
        caller: str = "completion",
    ) -> str:
        last_error: Exception | None = None
        for attempt in range(1, self.retry_attempts + 1):
            t0 = time.monotonic()
            try:
                response = await asyncio.wait_for(
                    self._client.chat.completions.create(
                        model=self.model,
                        messages=messages,
                        temperature=temperature,
                        max_tokens=self.max_tokens,
                        presence_penalty=0.1,
                        frequency_penalty=0.1,
                    ),
                    timeout=self.timeout_seconds,
                )
            except TRANSIENT_OPENAI_ERRORS as exc:
                last_error = exc
                log_service.log_llm_call(
                    model=self.model,
                    caller=caller,
                    duration_ms=int((time.monotonic() - t0) * 1000),
                    attempt=attempt,
                    status="retrying" if attempt < self.retry_attempts else "failed",
                    error=f"{type(exc).__name__}: {exc}",
                )
                if attempt < self.retry_attempts:
                    await asyncio.sleep(
                        backoff_delay(
                            attempt,
                            base=self.retry_base_delay,
                            cap=self.retry_max_delay,
                        )
                    )
                continue
            except openai.OpenAIError as exc:
                log_service.log_llm_call(
                    model=self.model,
                    caller=caller,
                    duration_ms=int((time.monotonic() - t0) * 1000),
                    attempt=attempt,
                    status="failed",
                    error=f"{type(exc).__name__}: {exc}",
                )
                raise CompletionError(f"Completion call failed in {caller}: {exc}") from exc

            usage = getattr(response, "usage", None)
            log_service.log_llm_call(
                model=self.model,
                caller=caller,
                input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                output_tokens=getattr(usage, "completion_tokens", 0) or 0,
                duration_ms=int((time.monotonic() - t0) * 1000),
                attempt=attempt,
            )
            choices = getattr(response, "choices", None) or []
            if not choices:
                return ""
            return (getattr(choices[0].message, "content", None) or "").strip()

        raise TransientCollaboratorError(
            f"Completion call in {caller} failed after {self.retry_attempts} attempts: {last_error}"
        ) from last_error

    async def close(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            await close()


def get_client(settings: Settings) -> CompletionClient:
    """Build the OpenRouter-backed completion client from settings."""
    base_url = settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1"
    openai_client = openai.AsyncOpenAI(
        api_key=settings.openrouter_api_key,
        base_url=base_url,
        max_retries=0,
    )
    return CompletionClient(
        openai_client,
        model=settings.active_model,
        max_tokens=settings.completion_max_tokens,
        timeout_seconds=settings.completion_timeout_seconds,
        retry_attempts=settings.completion_retry_attempts,
        retry_base_delay=settings.completion_retry_base_delay,
        retry_max_delay=settings.completion_retry_max_delay,
    )


def _strip_code_fence(raw_text: str) -> str:
    text = raw_text.strip()
    if text.startswith("```"):
        parts = text.split("```")
        if len(parts) >= 2:
            text = parts[1]
        if text.startswith("json"):
            text = text[4:]
        text = text.strip()
    return text


def extract_json_object(raw_text: str) -> dict[str, Any]:
    text = _strip_code_fence(raw_text)
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        raise json.JSONDecodeError("object not found", text, 0)
    parsed = json.loads(text[start : end + 1])
    if not isinstance(parsed, dict):
        raise json.JSONDecodeError("not an object", text, 0)
    return parsed


def extract_json_array(raw_text: str) -> list[Any]:
    text = _strip_code_fence(raw_text)
    start = text.find("[")
    end = text.rfind("]")
    if start < 0 or end <= start:
        raise json.JSONDecodeError("array not found", text, 0)
    parsed = json.loads(text[start : end + 1])
    if not isinstance(parsed, list):
        raise json.JSONDecodeError("not an array", text, 0)
    return parsed
