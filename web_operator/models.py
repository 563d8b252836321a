"""
Data models for the web operator.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from .errors import MalformedDecision


class Tool(str, Enum):
    GOTO = "GOTO"
    ACT = "ACT"
    EXTRACT = "EXTRACT"
    OBSERVE = "OBSERVE"
    WAIT = "WAIT"
    NAVBACK = "NAVBACK"
    CLOSE = "CLOSE"
    USER_INPUT = "USER_INPUT"
    # Internal only: never offered to, nor accepted from, the oracle.
    SCREENSHOT = "SCREENSHOT"

    @classmethod
    def parse(cls, value: Any) -> "Tool":
        """Decode an oracle-supplied tool name into a decision tool."""
        if isinstance(value, cls):
            tool = value
        else:
            name = str(value or "").strip().upper()
            if not name:
                raise MalformedDecision("decision has an empty tool")
            try:
                tool = cls(name)
            except ValueError:
                raise MalformedDecision(f"unrecognized tool: {name}") from None
        if tool not in DECISION_TOOLS:
            raise MalformedDecision(f"tool not available to decisions: {tool.value}")
        return tool


DECISION_TOOLS: FrozenSet[Tool] = frozenset(t for t in Tool if t is not Tool.SCREENSHOT)

# Tools whose result feeds the next decision as the latest extraction.
EXTRACTION_TOOLS: FrozenSet[Tool] = frozenset({Tool.EXTRACT, Tool.OBSERVE})


class RunState(str, Enum):
    NOT_STARTED = "not_started"
    SELECTING_START = "selecting_start"
    DECIDING = "deciding"
    EXECUTING = "executing"
    AWAITING_USER_INPUT = "awaiting_user_input"
    TERMINATED = "terminated"


class SessionState(str, Enum):
    PROVISIONING = "provisioning"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(frozen=True)
class Step:
    """One recorded decision in a run's history."""

    text: str
    reasoning: str
    tool: Tool
    instruction: str
    step_number: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "reasoning": self.reasoning,
            "tool": self.tool.value,
            "instruction": self.instruction,
            "stepNumber": self.step_number,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], step_number: Optional[int] = None) -> "Step":
        """Build a step from wire or oracle data, validating the tool."""
        if not isinstance(data, dict):
            raise MalformedDecision("step must be an object")
        number = step_number if step_number is not None else data.get("stepNumber", data.get("step_number"))
        try:
            number = int(number)
        except (TypeError, ValueError):
            raise MalformedDecision(f"invalid step number: {number!r}") from None
        if number < 1:
            raise MalformedDecision(f"step number must be 1-based, got {number}")
        return cls(
            text=str(data.get("text") or ""),
            reasoning=str(data.get("reasoning") or ""),
            tool=Tool.parse(data.get("tool")),
            instruction=str(data.get("instruction") or "").strip(),
            step_number=number,
        )

    @property
    def is_terminal(self) -> bool:
        return self.tool is Tool.CLOSE


def steps_from_dicts(items: List[Dict[str, Any]]) -> List[Step]:
    """Decode a history sent back by the surrounding system.

    Steps without a number are numbered by position.
    """
    steps = []
    for i, item in enumerate(items or []):
        has_number = isinstance(item, dict) and ("stepNumber" in item or "step_number" in item)
        steps.append(Step.from_dict(item, step_number=None if has_number else i + 1))
    for prev, cur in zip(steps, steps[1:]):
        if cur.step_number <= prev.step_number:
            raise MalformedDecision("step numbers must be strictly increasing")
    return steps


@dataclass(frozen=True)
class StartingPoint:
    url: str
    reasoning: str = ""


@dataclass
class NextStep:
    step: Step
    is_terminal: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"step": self.step.to_dict(), "isTerminal": self.is_terminal}


@dataclass
class AppliedStep:
    result: Any
    is_terminal: bool
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"result": self.result, "isTerminal": self.is_terminal}
        if self.message is not None:
            d["message"] = self.message
        return d
