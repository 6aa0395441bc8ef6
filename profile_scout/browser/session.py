"""Browsing collaborator: the session contract and its Playwright implementation.

A session is exclusively owned by one job. Nothing here is safe to call from two
coroutines at once; callers thread the handle through sequentially instead of
locking it.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from profile_scout.config import Settings
from profile_scout.errors import NavigationError, TransientCollaboratorError
from profile_scout.llm_client import CompletionClient, extract_json_array, extract_json_object
from profile_scout.services.prompt_store import render_prompt

SchemaT = TypeVar("SchemaT", bound=BaseModel)

SELECTOR_ACTION = re.compile(
    r"^(?P<verb>click|fill)\s+(?P<selector>.+?)(?:\s+with\s+(?P<value>.*))?$",
    re.IGNORECASE,
)
PLACEHOLDER = re.compile(r"%(\w+)%")

# Collects visible interactive elements with a selector the page can resolve later.
_OBSERVE_SCRIPT = """
() => {
  const nodes = Array.from(document.querySelectorAll(
    'a[href], button, input, select, textarea, [role="button"], [role="link"]'
  ));
  const out = [];
  nodes.forEach((el, i) => {
    const rect = el.getBoundingClientRect();
    if (rect.width === 0 || rect.height === 0) return;
    el.setAttribute('data-scout-id', String(i));
    const label = (el.innerText || el.value || el.getAttribute('aria-label')
      || el.getAttribute('placeholder') || el.getAttribute('name') || '').trim();
    out.push({
      selector: `[data-scout-id="${i}"]`,
      tag: el.tagName.toLowerCase(),
      text: label.slice(0, 120),
      href: el.getAttribute('href') || null,
    });
  });
  return out.slice(0, 300);
}
"""


@dataclass(slots=True)
class ElementDescription:
    selector: str
    description: str
    tag: str = ""
    href: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "selector": self.selector,
            "description": self.description,
            "tag": self.tag,
            "href": self.href,
        }


class BrowserSession(Protocol):
    current_url: str | None

    async def initialize(self) -> None: ...

    async def close(self) -> None: ...

    async def navigate(self, url: str, *, timeout: float | None = None) -> str: ...

    async def perform_action(
        self,
        instruction: str,
        variables: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> bool: ...

    async def extract(
        self,
        instruction: str,
        schema: type[SchemaT],
        *,
        timeout: float | None = None,
    ) -> SchemaT: ...

    async def observe(
        self,
        instruction: str,
        filters: dict[str, str] | None = None,
    ) -> list[ElementDescription]: ...

    async def wait_for_quiescence(self, *, timeout: float | None = None) -> bool: ...


def substitute_variables(text: str, variables: dict[str, str] | None) -> str:
    if not variables:
        return text
    return PLACEHOLDER.sub(lambda m: str(variables.get(m.group(1), m.group(0))), text)


class PlaywrightSession:
    """One chromium browser, context and page, owned by a single job."""

    def __init__(self, settings: Settings, llm: CompletionClient):
        self.settings = settings
        self.llm = llm
        self.current_url: str | None = None
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._page: Any = None

    async def __aenter__(self) -> "PlaywrightSession":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def page(self) -> Any:
        if self._page is None:
            raise RuntimeError("Browser session is not initialized")
        return self._page

    async def initialize(self) -> None:
        from playwright.async_api import async_playwright

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.settings.browser_headless,
            args=[
                "--disable-notifications",
                "--disable-geolocation",
                "--disable-dev-shm-usage",
                "--disable-blink-features=AutomationControlled",
                "--no-first-run",
                "--no-default-browser-check",
            ],
        )
        self._context = await self._browser.new_context(
            locale="en-US",
            viewport={"width": 1920, "height": 1080},
            ignore_https_errors=True,
        )
        self._page = await self._context.new_page()
        self._page.on("dialog", self._dismiss_dialog)
        logger.debug("Browser session initialized")

    @staticmethod
    async def _dismiss_dialog(dialog: Any) -> None:
        logger.debug(f"Dismissing native dialog: {dialog.type}")
        await dialog.dismiss()

    async def close(self) -> None:
        # Each handle is released even if an earlier one fails to close.
        for name in ("_context", "_browser"):
            handle = getattr(self, name)
            if handle is None:
                continue
            try:
                await handle.close()
            except Exception as exc:
                logger.warning(f"Failed to close browser {name.strip('_')}: {exc}")
            setattr(self, name, None)
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as exc:
                logger.warning(f"Failed to stop playwright: {exc}")
            self._playwright = None
        self._page = None
        logger.debug("Browser session closed")

    async def navigate(self, url: str, *, timeout: float | None = None) -> str:
        from playwright.async_api import Error as PlaywrightError

        budget = timeout or self.settings.navigation_timeout_seconds
        try:
            await self.page.goto(url, wait_until="domcontentloaded", timeout=budget * 1000)
        except PlaywrightError as exc:
            raise NavigationError(url, str(exc).splitlines()[0]) from exc
        self.current_url = self.page.url
        return self.current_url

    async def wait_for_quiescence(self, *, timeout: float | None = None) -> bool:
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError

        budget = timeout or self.settings.quiescence_timeout_seconds
        try:
            await self.page.wait_for_load_state("networkidle", timeout=budget * 1000)
        except PlaywrightTimeoutError:
            return False
        finally:
            self.current_url = self.page.url
        return True

    async def perform_action(
        self,
        instruction: str,
        variables: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> bool:
        """Run one interaction. Returns False when nothing on the page could take it.

        ``click <selector>`` and ``fill <selector> with <value>`` run directly;
        any other instruction is resolved against observed elements.
        """
        from playwright.async_api import Error as PlaywrightError

        budget_ms = (timeout or self.settings.navigation_timeout_seconds) * 1000
        match = SELECTOR_ACTION.match(instruction.strip())
        try:
            if match:
                selector = match.group("selector").strip()
                if match.group("verb").lower() == "fill":
                    value = substitute_variables(match.group("value") or "", variables)
                    await self.page.fill(selector, value, timeout=budget_ms)
                else:
                    await self.page.click(selector, timeout=budget_ms)
            else:
                candidates = await self.observe(substitute_variables(instruction, variables))
                if not candidates:
                    return False
                await self.page.click(candidates[0].selector, timeout=budget_ms)
        except PlaywrightError as exc:
            logger.debug(f"Action '{instruction}' not performed: {str(exc).splitlines()[0]}")
            return False
        self.current_url = self.page.url
        return True

    async def observe(
        self,
        instruction: str,
        filters: dict[str, str] | None = None,
    ) -> list[ElementDescription]:
        raw_elements = await self.page.evaluate(_OBSERVE_SCRIPT)
        elements = [
            ElementDescription(
                selector=item["selector"],
                description=f"<{item['tag']}> {item['text']}".strip(),
                tag=item["tag"],
                href=item.get("href"),
            )
            for item in raw_elements
        ]
        if filters and filters.get("tag"):
            elements = [el for el in elements if el.tag == filters["tag"]]
        if not elements or not instruction:
            return elements

        listing = "\n".join(f"{i}: {el.description} {el.href or ''}" for i, el in enumerate(elements))
        reply = await self.llm.complete(
            [
                {
                    "role": "user",
                    "content": render_prompt(
                        "browser.observe_user_prompt",
                        instruction=instruction,
                        elements=listing,
                    ),
                }
            ],
            temperature=0.0,
            caller="browser.observe",
        )
        try:
            indexes = extract_json_array(reply)
        except json.JSONDecodeError:
            logger.warning(f"Observe reply was not a JSON array: {reply[:200]}")
            return []
        picked: list[ElementDescription] = []
        for index in indexes:
            if isinstance(index, int) and 0 <= index < len(elements):
                picked.append(elements[index])
        return picked

    async def extract(
        self,
        instruction: str,
        schema: type[SchemaT],
        *,
        timeout: float | None = None,
    ) -> SchemaT:
        page_text = await self.page.inner_text("body")
        page_text = re.sub(r"\s+", " ", page_text).strip()[: self.settings.extractor_max_page_chars]
        reply = await self.llm.complete(
            [
                {"role": "system", "content": render_prompt("browser.extract_system_prompt")},
                {
                    "role": "user",
                    "content": render_prompt(
                        "browser.extract_user_prompt",
                        instruction=instruction,
                        schema=json.dumps(schema.model_json_schema()),
                        url=self.page.url,
                        page_text=page_text,
                    ),
                },
            ],
            temperature=0.0,
            caller="browser.extract",
        )
        try:
            return schema.model_validate(extract_json_object(reply))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise TransientCollaboratorError(
                f"Extraction reply did not match {schema.__name__}: {exc}"
            ) from exc


class SessionFactory(Protocol):
    def __call__(self) -> BrowserSession: ...


def playwright_session_factory(settings: Settings, llm: CompletionClient) -> SessionFactory:
    def factory() -> BrowserSession:
        return PlaywrightSession(settings, llm)

    return factory
