"""
Oracle message types and the provider-neutral service interface.

A decision request is a system prompt plus one user message that may carry
the current page screenshot; the answer is expected to be a JSON object.
"""

import base64
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Message:
    """A message sent to the LLM, optionally carrying PNG screenshots."""

    role: MessageRole
    content: Optional[str] = None
    images: List[bytes] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"role": self.role.value}
        if self.content is not None:
            d["content"] = self.content
        if self.images:
            d["images"] = len(self.images)
        return d

    def encoded_images(self) -> List[str]:
        return [base64.b64encode(img).decode("ascii") for img in self.images]

    # ── Factory helpers ──────────────────────────────────────────

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str, images: Optional[List[bytes]] = None) -> "Message":
        return cls(role=MessageRole.USER, content=content, images=list(images or []))


@dataclass
class CompletionResponse:
    """Text answer plus the provider's finish reason and token usage."""

    content: Optional[str] = None
    finish_reason: Optional[str] = None
    usage: Optional[Dict[str, int]] = None
    model: Optional[str] = None

    def json(self) -> Dict[str, Any]:
        return parse_llm_json(self.content)


def parse_llm_json(content: Any) -> Dict[str, Any]:
    """Decode a JSON object from model output, tolerating code fences."""
    if not isinstance(content, str):
        raise ValueError(f"LLM returned non-text content type={type(content)}")

    raw = content.strip()
    try:
        obj = json.loads(raw)
    except ValueError:
        s = raw
        if s.startswith("```json"):
            s = s[len("```json"):]
        elif s.startswith("```"):
            s = s[len("```"):]
        if s.endswith("```"):
            s = s[: -len("```")]
        s = s.strip()
        start = s.find("{")
        end = s.rfind("}")
        if not 0 <= start < end:
            raise ValueError(f"LLM returned non-JSON: {raw[:200]}")
        try:
            obj = json.loads(s[start : end + 1])
        except ValueError as e:
            raise ValueError(f"LLM returned non-JSON: {raw[:200]}") from e
    if not isinstance(obj, dict):
        raise ValueError("LLM returned non-object JSON")
    return obj


class BaseLLMService(ABC):
    """
    Provider-neutral chat-completion client used as the decision oracle.

    Subclasses must implement ``complete`` and ``is_available``.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        api_base: Optional[str] = None,
        default_temperature: float = 0.2,
        default_max_tokens: int = 1024,
        timeout_seconds: float = 60.0,
        max_retries: int = 2,
    ):
        self.api_key = api_key
        self.model = model
        self.api_base = api_base
        self.default_temperature = default_temperature
        self.default_max_tokens = default_max_tokens
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries

    def sampling(self, temperature: Optional[float], max_tokens: Optional[int]) -> Tuple[float, int]:
        """Per-call sampling settings, falling back to the service defaults."""
        return (
            self.default_temperature if temperature is None else temperature,
            self.default_max_tokens if max_tokens is None else max_tokens,
        )

    @abstractmethod
    def complete(
        self,
        messages: List[Message],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        **kwargs,
    ) -> CompletionResponse:
        ...

    @abstractmethod
    def is_available(self) -> bool:
        ...
