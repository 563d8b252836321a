"""
OpenAI chat-completions service, for both api.openai.com and Azure OpenAI.
"""

import logging
from typing import Any, Dict, List, Optional

from ..base import BaseLLMService, CompletionResponse, Message

logger = logging.getLogger(__name__)

try:
    from openai import AzureOpenAI, OpenAI

    OPENAI_AVAILABLE = True
except ImportError:
    OPENAI_AVAILABLE = False


class OpenAIService(BaseLLMService):
    """
    Chat completions with JSON mode and PNG screenshots as image parts.

    With ``azure_api_version`` set, *api_base* is the Azure endpoint and
    *model* the deployment name.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        api_base: Optional[str] = None,
        default_temperature: float = 0.2,
        default_max_tokens: int = 1024,
        timeout_seconds: float = 60.0,
        max_retries: int = 2,
        organization: Optional[str] = None,
        azure_api_version: Optional[str] = None,
        image_detail: str = "auto",
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
        if not OPENAI_AVAILABLE:
            raise ImportError("openai package required. Run: pip install openai")
        self.image_detail = image_detail

        common = {"api_key": api_key, "timeout": timeout_seconds, "max_retries": max_retries}
        if azure_api_version:
            self.client = AzureOpenAI(azure_endpoint=api_base, api_version=azure_api_version, **common)
        else:
            self.client = OpenAI(base_url=api_base, organization=organization, **common)

    # ── Format helpers ───────────────────────────────────────────

    def _image_part(self, data: str) -> Dict[str, Any]:
        return {
            "type": "image_url",
            "image_url": {"url": f"data:image/png;base64,{data}", "detail": self.image_detail},
        }

    def _to_api_messages(self, messages: List[Message]) -> List[Dict[str, Any]]:
        result = []
        for msg in messages:
            text = msg.content or ""
            if msg.images:
                content: Any = [{"type": "text", "text": text}]
                content.extend(self._image_part(data) for data in msg.encoded_images())
            else:
                content = text
            result.append({"role": msg.role.value, "content": content})
        return result

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
        if json_mode:
            kwargs.setdefault("response_format", {"type": "json_object"})

        response = self.client.chat.completions.create(
            model=self.model,
            messages=self._to_api_messages(messages),
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs,
        )
        choice = response.choices[0]
        usage = response.usage
        if choice.finish_reason == "length":
            logger.warning(f"{self.model} hit max_tokens={max_tokens}; output may be truncated")

        return CompletionResponse(
            content=choice.message.content,
            finish_reason=choice.finish_reason,
            usage=usage.model_dump(include={"prompt_tokens", "completion_tokens", "total_tokens"}) if usage else None,
            model=response.model,
        )

    def is_available(self) -> bool:
        try:
            self.client.models.retrieve(self.model)
        except Exception as e:
            logger.debug(f"OpenAI model {self.model} unavailable: {e}")
            return False
        return True
