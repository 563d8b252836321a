"""
Decision engine – asks the oracle for the next step of a run.

The oracle answers with a JSON object; it is decoded here into a ``Step``
with a closed ``Tool`` and checked against what that tool needs.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from .config import OperatorConfig
from .errors import MalformedDecision, OracleFailure
from .llm import BaseLLMService, Message
from .models import DECISION_TOOLS, StartingPoint, Step, Tool

logger = logging.getLogger(__name__)

_TOOL_GUIDE = """\
1. GOTO: navigate to a URL (instruction is the absolute URL)
2. ACT: perform an action on the page (click, type text, ...)
3. EXTRACT: extract information from the page
4. OBSERVE: observe the actionable elements of the page
5. WAIT: wait for the page; instruction is a duration in milliseconds
6. NAVBACK: go back to the previous page
7. CLOSE: the goal is complete, close the session
8. USER_INPUT: a captcha, login or other step needs a human; the run pauses \
until the user has handled it. Say in the instruction what the user must do."""

DECISION_SCHEMA = (
    '{"text": string, "reasoning": string, '
    '"tool": "' + "|".join(sorted(t.value for t in DECISION_TOOLS)) + '", '
    '"instruction": string}'
)


def is_absolute_url(value: str) -> bool:
    parts = urlsplit(value or "")
    return parts.scheme in {"http", "https"} and bool(parts.netloc)


def validate_instruction(step: Step) -> Step:
    """Reject steps whose instruction cannot work for their tool."""
    if step.tool is Tool.GOTO and not is_absolute_url(step.instruction):
        raise MalformedDecision(f"GOTO needs an absolute URL, got {step.instruction!r}")
    if step.tool in (Tool.ACT, Tool.EXTRACT) and not step.instruction:
        raise MalformedDecision(f"{step.tool.value} needs an instruction")
    if step.tool is Tool.WAIT:
        try:
            ms = int(step.instruction)
        except ValueError:
            raise MalformedDecision(f"WAIT needs milliseconds, got {step.instruction!r}") from None
        if ms < 0:
            raise MalformedDecision(f"WAIT needs a non-negative duration, got {ms}")
    return step


def format_history(steps: List[Step]) -> str:
    return "\n".join(
        f"{s.step_number}. {s.text} (tool: {s.tool.value}, instruction: {s.instruction})"
        for s in steps
    )


def format_extraction(extraction: Any) -> str:
    if isinstance(extraction, str):
        return extraction
    return json.dumps(extraction, indent=2, default=str, ensure_ascii=False)


class DecisionEngine:
    """Oracle client producing one step per call."""

    def __init__(self, llm: BaseLLMService, config: Optional[OperatorConfig] = None):
        self.llm = llm
        self.config = config or OperatorConfig()

    async def decide(
        self,
        goal: str,
        history: List[Step],
        latest_extraction: Any = None,
        screenshot: Optional[bytes] = None,
        current_url: str = "",
    ) -> Step:
        prompt = self.build_prompt(goal, history, latest_extraction, current_url)
        images = [screenshot] if screenshot else []
        data = await self._ask(
            [
                Message.system(f"You are a web browsing assistant. Return JSON: {DECISION_SCHEMA}"),
                Message.user(prompt, images=images),
            ]
        )
        step = Step.from_dict(data, step_number=len(history) + 1)
        logger.info(f"Step {step.step_number}: {step.tool.value} {step.instruction!r}")
        return validate_instruction(step)

    async def select_starting_url(self, goal: str) -> StartingPoint:
        prompt = (
            f'Given the goal: "{goal}", pick the best URL to start from. Options:\n'
            "1. A relevant search engine (Google, Bing, ...)\n"
            "2. The target site directly if you are sure of it\n"
            "3. Any other suitable starting point\n\n"
            "Return the single URL that reaches the goal most efficiently."
        )
        data = await self._ask(
            [
                Message.system('Return JSON: {"url": string, "reasoning": string}'),
                Message.user(prompt),
            ]
        )
        url = str(data.get("url") or "").strip()
        if not is_absolute_url(url):
            raise MalformedDecision(f"starting URL is not an absolute URL: {url!r}")
        return StartingPoint(url=url, reasoning=str(data.get("reasoning") or ""))

    def build_prompt(
        self,
        goal: str,
        history: List[Step],
        latest_extraction: Any = None,
        current_url: str = "",
    ) -> str:
        sections = [f'You help the user reach the goal: "{goal}".']
        if history:
            sections.append(f"Steps taken so far:\n{format_history(history)}")
            sections.append(f"Current URL: {current_url}")
        if latest_extraction is not None:
            sections.append(
                f"Latest extraction or observation result:\n{format_extraction(latest_extraction)}"
            )
        sections.append(f"Decide the next step. Available tools:\n{_TOOL_GUIDE}")
        sections.append("Give your reasoning, the tool to use and a detailed instruction.")
        return "\n\n".join(sections)

    async def _ask(self, messages: List[Message]) -> Dict[str, Any]:
        try:
            response = await asyncio.to_thread(
                self.llm.complete,
                messages,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
                json_mode=True,
            )
        except Exception as e:
            logger.error(f"Oracle call failed: {e}")
            raise OracleFailure(f"{type(e).__name__}: {e}") from e
        if not response.content:
            raise OracleFailure("oracle returned an empty response")
        try:
            return response.json()
        except ValueError as e:
            raise MalformedDecision(str(e)) from e
