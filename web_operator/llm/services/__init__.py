"""Provider clients behind ``BaseLLMService``."""

from .anthropic import AnthropicService
from .openai import OpenAIService

__all__ = ["AnthropicService", "OpenAIService"]
