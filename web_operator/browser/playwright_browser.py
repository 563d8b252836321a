"""
Playwright-backed browser capability.

Local sessions launch Chromium; remote sessions attach over CDP to the
Browserbase session that was provisioned for them.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from playwright.async_api import Browser, Page, Playwright, async_playwright

from ..config import OperatorConfig
from ..llm import BaseLLMService, Message
from .base import BrowserCapability, BrowserFactory
from .elements import parse_aria_snapshot, parse_html_elements, rank_elements

logger = logging.getLogger(__name__)

_MAX_PAGE_TEXT = 12000

ACT_SYSTEM_PROMPT = (
    "You operate a web page. Pick ONE element and method for the instruction. "
    'Return JSON: {"index": int, "method": "click|fill|press|select", "argument": string|null}.'
)

EXTRACT_SYSTEM_PROMPT = (
    "You read web page text and pull out what the instruction asks for. "
    'Return JSON: {"extraction": string}.'
)


class PlaywrightBrowser(BrowserCapability):
    """Browser capability over one Playwright page."""

    def __init__(
        self,
        playwright: Playwright,
        browser: Browser,
        page: Page,
        llm: BaseLLMService,
        config: OperatorConfig,
    ):
        self._pw = playwright
        self._browser = browser
        self.page = page
        self.llm = llm
        self.config = config

    # ── Lifecycle ────────────────────────────────────────────────

    @classmethod
    async def start(
        cls,
        session_id: str,
        config: OperatorConfig,
        llm: BaseLLMService,
    ) -> "PlaywrightBrowser":
        pw = await async_playwright().start()
        try:
            if config.local_mode or session_id.startswith("local-"):
                browser = await pw.chromium.launch(headless=config.headless)
                context = await browser.new_context()
                page = await context.new_page()
            else:
                query = urlencode({"apiKey": config.browserbase_api_key, "sessionId": session_id})
                browser = await pw.chromium.connect_over_cdp(f"{config.browserbase_connect_url}?{query}")
                context = browser.contexts[0] if browser.contexts else await browser.new_context()
                page = context.pages[0] if context.pages else await context.new_page()
        except BaseException:
            await pw.stop()
            raise
        logger.info(f"Browser ready for session {session_id}")
        return cls(pw, browser, page, llm, config)

    async def close(self) -> None:
        try:
            await self._browser.close()
        finally:
            await self._pw.stop()

    # ── Capability ───────────────────────────────────────────────

    async def navigate(self, url: str, wait_until: str = "commit", timeout_ms: int = 60000) -> None:
        await self.page.goto(url, wait_until=wait_until, timeout=timeout_ms)

    async def go_back(self) -> None:
        await self.page.go_back()

    async def screenshot(self) -> bytes:
        return await self.page.screenshot(type="png")

    async def current_url(self) -> str:
        return self.page.url

    async def observe(
        self, instruction: Optional[str] = None, use_accessibility_tree: bool = True
    ) -> List[Dict[str, Any]]:
        if use_accessibility_tree:
            snapshot = await self.page.locator("body").aria_snapshot()
            elements = parse_aria_snapshot(snapshot)
        else:
            elements = parse_html_elements(await self.page.content())
        return rank_elements(instruction, elements)

    async def act(self, instruction: str) -> Any:
        elements = await self.observe(instruction)
        if not elements:
            raise RuntimeError("no actionable elements on the page")

        listing = "\n".join(f'{el["index"]}: {el["description"]}' for el in elements)
        decision = await self._ask_json(
            ACT_SYSTEM_PROMPT,
            f"INSTRUCTION: {instruction}\nURL: {self.page.url}\n\nELEMENTS:\n{listing}",
        )

        index = decision.get("index")
        if not isinstance(index, int) or not 0 <= index < len(elements):
            raise RuntimeError(f"act chose an invalid element: {index!r}")
        el = elements[index]
        method = str(decision.get("method") or el["method"]).lower()
        argument = decision.get("argument")

        if el.get("selector"):
            locator = self.page.locator(el["selector"]).first
        else:
            locator = self.page.get_by_role(el["role"], name=el["name"] or None).first

        if method == "click":
            await locator.click()
        elif method == "fill":
            await locator.fill(str(argument or ""))
        elif method == "press":
            await locator.press(str(argument or "Enter"))
        elif method == "select":
            await locator.select_option(str(argument or ""))
        else:
            raise RuntimeError(f"act chose an unknown method: {method}")

        return {"element": el["description"], "method": method, "argument": argument}

    async def extract(self, instruction: str) -> Any:
        text = await self.page.inner_text("body")
        answer = await self._ask_json(
            EXTRACT_SYSTEM_PROMPT,
            f"INSTRUCTION: {instruction}\nURL: {self.page.url}\n\nPAGE TEXT:\n{text[:_MAX_PAGE_TEXT]}",
        )
        extraction = answer.get("extraction")
        if isinstance(extraction, (dict, list)):
            return json.dumps(extraction, ensure_ascii=False)
        return "" if extraction is None else str(extraction)

    # ── Helpers ──────────────────────────────────────────────────

    async def _ask_json(self, system: str, user: str) -> Dict[str, Any]:
        response = await asyncio.to_thread(
            self.llm.complete,
            [Message.system(system), Message.user(user)],
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            json_mode=True,
        )
        return response.json()


def playwright_factory(config: OperatorConfig, llm: BaseLLMService) -> BrowserFactory:
    """Registry factory that opens a Playwright browser for a session."""

    async def factory(session_id: str, region: str, context_id: Optional[str]) -> BrowserCapability:
        logger.debug(f"Opening browser for session {session_id} (region={region}, context={context_id})")
        return await PlaywrightBrowser.start(session_id, config=config, llm=llm)

    return factory
