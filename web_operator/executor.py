"""
Step executor – applies one decided tool to a session's browser.

Any browser fault releases the whole session before the failure is
re-raised; a faulted page is never reused.
"""

import asyncio
import logging
import traceback
from typing import Any, Awaitable, Callable, Dict, Optional

from .browser.base import BrowserCapability
from .config import OperatorConfig
from .errors import ExecutionFailure, MalformedDecision, OperatorError
from .models import Tool
from .registry import SessionRegistry

logger = logging.getLogger(__name__)

BrowserCall = Callable[[BrowserCapability, str], Awaitable[Any]]


class StepExecutor:
    """
    Executes steps against the session registry.

    Example::

        executor = StepExecutor(registry)
        await executor.execute("sess-1", Tool.GOTO, "https://example.com")
        data = await executor.execute("sess-1", Tool.EXTRACT, "the page title")
    """

    def __init__(self, registry: SessionRegistry, config: Optional[OperatorConfig] = None):
        self.registry = registry
        self.config = config or OperatorConfig()
        self._browser_calls: Dict[Tool, BrowserCall] = {
            Tool.GOTO: self._goto,
            Tool.ACT: lambda browser, instruction: browser.act(instruction),
            Tool.EXTRACT: lambda browser, instruction: browser.extract(instruction),
            Tool.OBSERVE: lambda browser, instruction: browser.observe(
                instruction or None, use_accessibility_tree=True
            ),
            Tool.NAVBACK: lambda browser, instruction: browser.go_back(),
            Tool.SCREENSHOT: lambda browser, instruction: browser.screenshot(),
        }

    async def execute(self, session_id: str, tool: Tool, instruction: str = "") -> Any:
        instruction = (instruction or "").strip()

        if tool is Tool.USER_INPUT:
            return {
                "status": "waiting_for_user",
                "message": instruction or self.config.user_input_message,
            }
        if tool is Tool.CLOSE:
            await self.registry.release(session_id)
            return None
        if tool is Tool.WAIT:
            await self._wait(instruction)
            return None

        call = self._browser_calls.get(tool)
        if call is None:
            raise MalformedDecision(f"no executor for tool {tool}")

        browser = await self.registry.acquire(session_id)
        try:
            return await call(browser, instruction)
        except OperatorError:
            await self.registry.release(session_id)
            raise
        except Exception as e:
            logger.error(f"{tool.value} failed for session {session_id}: {type(e).__name__}: {e}")
            logger.debug(traceback.format_exc())
            await self.registry.release(session_id)
            raise ExecutionFailure(f"{type(e).__name__}: {e}", tool=tool.value) from e

    async def current_url(self, session_id: str) -> str:
        """Best-effort page URL; a failed read does not fault the session."""
        session = self.registry.get(session_id)
        if session is None or session.handle is None:
            return ""
        try:
            return await session.handle.current_url()
        except Exception as e:
            logger.warning(f"Could not read page URL for session {session_id}: {e}")
            return ""

    # ── Tool handlers ────────────────────────────────────────────

    async def _goto(self, browser: BrowserCapability, url: str) -> None:
        if not url:
            raise MalformedDecision("GOTO requires a URL")
        await browser.navigate(url, wait_until="commit", timeout_ms=self.config.goto_timeout_ms)

    async def _wait(self, instruction: str) -> None:
        try:
            ms = int(float(instruction))
        except (ValueError, OverflowError):
            raise MalformedDecision(f"WAIT needs milliseconds, got {instruction!r}") from None
        if ms < 0:
            raise MalformedDecision(f"WAIT needs a non-negative duration, got {ms}")
        if ms > self.config.max_wait_ms:
            logger.warning(f"WAIT of {ms}ms clamped to {self.config.max_wait_ms}ms")
            ms = self.config.max_wait_ms

        # Once started the delay always elapses, even if the caller is cancelled.
        timer = asyncio.ensure_future(asyncio.sleep(ms / 1000))
        try:
            await asyncio.shield(timer)
        except asyncio.CancelledError:
            await timer
            raise
