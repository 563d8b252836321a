"""
Anthropic Messages API service.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from ..base import BaseLLMService, CompletionResponse, Message, MessageRole

logger = logging.getLogger(__name__)

try:
    import anthropic

    ANTHROPIC_AVAILABLE = True
except ImportError:
    ANTHROPIC_AVAILABLE = False

# The Messages API has no JSON mode; the system prompt asks for it instead.
_JSON_INSTRUCTION = "Respond with a single JSON object and nothing else."


class AnthropicService(BaseLLMService):
    """Claude over the Messages API, screenshots sent as base64 image blocks."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        api_base: Optional[str] = None,
        default_temperature: float = 0.2,
        default_max_tokens: int = 1024,
        timeout_seconds: float = 60.0,
        max_retries: int = 2,
    ):
        super().__init__(
            api_key,
            model,
            api_base,
            default_temperature,
            default_max_tokens,
            timeout_seconds,
            max_retries,
        )
        if not ANTHROPIC_AVAILABLE:
            raise ImportError("anthropic package required. Run: pip install anthropic")

        self.client = anthropic.Anthropic(
            api_key=api_key,
            base_url=api_base,
            timeout=timeout_seconds,
            max_retries=max_retries,
        )

    # ── Format helpers ───────────────────────────────────────────

    @staticmethod
    def _image_block(data: str) -> Dict[str, Any]:
        return {"type": "image", "source": {"type": "base64", "media_type": "image/png", "data": data}}

    def _to_api_messages(self, messages: List[Message]) -> Tuple[Optional[str], List[Dict[str, Any]]]:
        """Split out the system prompt; images go before the text they illustrate."""
        system_parts: List[str] = []
        turns: List[Dict[str, Any]] = []

        for msg in messages:
            if msg.role is MessageRole.SYSTEM:
                if msg.content:
                    system_parts.append(msg.content)
                continue
            text = msg.content or ""
            if msg.images:
                content: Any = [self._image_block(data) for data in msg.encoded_images()]
                content.append({"type": "text", "text": text})
            else:
                content = text
            turns.append({"role": msg.role.value, "content": content})

        return ("\n\n".join(system_parts) or None), turns

    # ── Core API ─────────────────────────────────────────────────

    def complete(
        self,
        messages: List[Message],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        **kwargs,
    ) -> CompletionResponse:
        temperature, max_tokens = self.sampling(temperature, max_tokens)
        system_prompt, turns = self._to_api_messages(messages)
        if json_mode:
            system_prompt = "\n\n".join(p for p in (system_prompt, _JSON_INSTRUCTION) if p)
        if system_prompt:
            kwargs.setdefault("system", system_prompt)

        response = self.client.messages.create(
            model=self.model,
            messages=turns,
            max_tokens=max_tokens,
            temperature=temperature,
            **kwargs,
        )
        text = "".join(block.text for block in response.content if getattr(block, "type", None) == "text")
        if response.stop_reason == "max_tokens":
            logger.warning(f"{self.model} hit max_tokens={max_tokens}; output may be truncated")

        usage = None
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
                "total_tokens": response.usage.input_tokens + response.usage.output_tokens,
            }
        return CompletionResponse(
            content=text or None,
            finish_reason=response.stop_reason,
            usage=usage,
            model=response.model,
        )

    def is_available(self) -> bool:
        try:
            self.client.models.retrieve(self.model)
        except Exception as e:
            logger.debug(f"Anthropic model {self.model} unavailable: {e}")
            return False
        return True
