"""
Oracle service layer: chat-completion clients that answer in JSON.

Quick start::

    from web_operator.llm import create_llm_service, Message

    llm = create_llm_service("anthropic", api_key="sk-ant-...")
    response = llm.complete(
        [Message.system("Answer in JSON."), Message.user("Which search engine?")],
        json_mode=True,
    )
    print(response.json())
"""

from typing import Any, Dict, Optional

from ..config import LLMConfig
from ..errors import ConfigurationFailure
from .base import (
    BaseLLMService,
    CompletionResponse,
    Message,
    MessageRole,
    parse_llm_json,
)
from .services import AnthropicService, OpenAIService

DEFAULT_AZURE_API_VERSION = "2024-10-21"

# provider -> (service class, default model)
PROVIDERS: Dict[str, Any] = {
    "openai": (OpenAIService, "gpt-4o"),
    "azure": (OpenAIService, "gpt-4o"),
    "anthropic": (AnthropicService, "claude-sonnet-4-20250514"),
}


def create_llm_service(
    provider: str,
    api_key: str,
    model: Optional[str] = None,
    api_base: Optional[str] = None,
    api_version: Optional[str] = None,
    **kwargs,
) -> BaseLLMService:
    """Create an oracle client by provider name.

    Args:
        provider: ``"openai"``, ``"azure"`` or ``"anthropic"`` (any case).
        api_key: API key for the provider.
        model: Model id; for Azure the deployment name. Provider default when *None*.
        api_base: Custom API base URL; required endpoint for Azure.
        api_version: Azure API version.
        **kwargs: Passed to the service, e.g. ``timeout_seconds``.
    """
    name = (provider or "").strip().lower()
    if name not in PROVIDERS:
        raise ConfigurationFailure(
            f"Unknown LLM provider: {provider}. Available: {', '.join(PROVIDERS)}"
        )
    service_cls, default_model = PROVIDERS[name]
    if name == "azure":
        kwargs["azure_api_version"] = api_version or DEFAULT_AZURE_API_VERSION
    return service_cls(api_key=api_key, model=model or default_model, api_base=api_base, **kwargs)


def llm_service_from_config(config: Optional[LLMConfig] = None, **kwargs) -> BaseLLMService:
    """Build the oracle client described by *config*, or by the environment."""
    config = config or LLMConfig.from_env()
    return create_llm_service(
        provider=config.provider_type,
        api_key=config.api_key,
        model=config.model_name,
        api_base=config.api_base,
        api_version=config.api_version,
        **kwargs,
    )


__all__ = [
    "create_llm_service",
    "llm_service_from_config",
    "parse_llm_json",
    "PROVIDERS",
    "BaseLLMService",
    "OpenAIService",
    "AnthropicService",
    "Message",
    "MessageRole",
    "CompletionResponse",
]
