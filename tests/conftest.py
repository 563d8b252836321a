"""Shared fakes and fixtures.

Fakes stand in for the three external collaborators:
  FakeBrowser:  browser capability recording every call
  FakeFactory:  registry factory counting provisioning attempts
  ScriptedLLM:  oracle answering from a queue of JSON replies
"""
from __future__ import annotations

import asyncio
import json
import threading
from typing import Any, Dict, List, Optional, Set

import pytest

from web_operator.agent import AgentLoop
from web_operator.browser.base import BrowserCapability
from web_operator.config import OperatorConfig
from web_operator.decision import DecisionEngine
from web_operator.executor import StepExecutor
from web_operator.llm.base import BaseLLMService, CompletionResponse, Message
from web_operator.registry import SessionRegistry

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"


# ---------------------------------------------------------------------------
# Browser
# ---------------------------------------------------------------------------


class FakeBrowser(BrowserCapability):
    def __init__(self, session_id: str, fail_on: Optional[Set[str]] = None, fail_close: bool = False):
        self.session_id = session_id
        self.fail_on = set(fail_on or ())
        self.fail_close = fail_close
        self.calls: List[tuple] = []
        self.close_calls = 0
        self.url = "about:blank"
        self.extraction: Any = "$123.45"

    def _call(self, name: str, *args: Any) -> None:
        self.calls.append((name,) + args)
        if name in self.fail_on:
            raise RuntimeError(f"{name} exploded")

    async def navigate(self, url: str, wait_until: str = "commit", timeout_ms: int = 60000) -> None:
        self._call("navigate", url, wait_until, timeout_ms)
        self.url = url

    async def act(self, instruction: str) -> Any:
        self._call("act", instruction)
        return {"element": "button", "method": "click", "argument": None}

    async def extract(self, instruction: str) -> Any:
        self._call("extract", instruction)
        return self.extraction

    async def observe(self, instruction=None, use_accessibility_tree: bool = True):
        self._call("observe", instruction, use_accessibility_tree)
        return [{"role": "button", "name": "Search", "index": 0}]

    async def go_back(self) -> None:
        self._call("go_back")

    async def screenshot(self) -> bytes:
        self._call("screenshot")
        return PNG_BYTES

    async def current_url(self) -> str:
        return self.url

    async def close(self) -> None:
        self.close_calls += 1
        if self.fail_close:
            raise RuntimeError("close exploded")

    @property
    def call_names(self) -> List[str]:
        return [c[0] for c in self.calls]


class FakeFactory:
    def __init__(self, delay: float = 0.0, fail: bool = False, fail_on: Optional[Set[str]] = None):
        self.delay = delay
        self.fail = fail
        self.fail_on = fail_on
        self.calls: List[tuple] = []
        self.browsers: Dict[str, FakeBrowser] = {}

    async def __call__(self, session_id: str, region: str, context_id: Optional[str]) -> FakeBrowser:
        self.calls.append((session_id, region, context_id))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConnectionError("provider down")
        browser = FakeBrowser(session_id, fail_on=self.fail_on)
        self.browsers[session_id] = browser
        return browser


# ---------------------------------------------------------------------------
# Oracle
# ---------------------------------------------------------------------------


class ScriptedLLM(BaseLLMService):
    def __init__(self, replies: Optional[List[Any]] = None):
        super().__init__(api_key="test", model="scripted")
        self.replies: List[Any] = list(replies or [])
        self.requests: List[List[Message]] = []
        self._lock = threading.Lock()

    def push(self, *replies: Any) -> None:
        with self._lock:
            self.replies.extend(replies)

    def complete(self, messages, temperature=None, max_tokens=None, json_mode=False, **kwargs):
        with self._lock:
            self.requests.append(list(messages))
            if not self.replies:
                raise RuntimeError("no scripted reply left")
            reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        content = reply if isinstance(reply, str) else json.dumps(reply)
        return CompletionResponse(content=content, model=self.model)

    def is_available(self) -> bool:
        return True

    @property
    def call_count(self) -> int:
        return len(self.requests)


def start_reply(url: str = "https://www.google.com/search?q=stock+X") -> Dict[str, str]:
    return {"url": url, "reasoning": "search first"}


def step_reply(tool: str, instruction: str = "", text: str = "") -> Dict[str, str]:
    return {"text": text or f"{tool} step", "reasoning": f"because {tool}", "tool": tool, "instruction": instruction}


async def wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config() -> OperatorConfig:
    return OperatorConfig(use_local_mode=True, max_wait_ms=50, max_steps=10)


@pytest.fixture
def factory() -> FakeFactory:
    return FakeFactory()


@pytest.fixture
def registry(factory: FakeFactory) -> SessionRegistry:
    return SessionRegistry(factory)


@pytest.fixture
def executor(registry: SessionRegistry, config: OperatorConfig) -> StepExecutor:
    return StepExecutor(registry, config)


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def decisions(llm: ScriptedLLM, config: OperatorConfig) -> DecisionEngine:
    return DecisionEngine(llm, config)


@pytest.fixture
def loop(registry: SessionRegistry, decisions: DecisionEngine, executor: StepExecutor, config: OperatorConfig) -> AgentLoop:
    return AgentLoop(registry, decisions, executor=executor, config=config)
