"""
Configuration classes for the web operator.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigurationFailure

DEFAULT_USER_INPUT_MESSAGE = "Manual handling needed (captcha or login), continue when done."

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(value: Optional[str], default: bool = False) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUTHY


@dataclass
class LLMConfig:
    """Configuration for connecting to an LLM provider."""

    provider_type: str  # "openai", "azure", "anthropic"
    api_key: str
    model_name: str
    api_base: Optional[str] = None
    api_version: Optional[str] = None

    def __post_init__(self):
        if not self.provider_type:
            raise ConfigurationFailure("provider_type is required")
        if not self.api_key:
            raise ConfigurationFailure(f"api_key is required for provider '{self.provider_type}'")
        if not self.model_name:
            raise ConfigurationFailure("model_name is required")
        if self.provider_type == "azure" and not self.api_base:
            raise ConfigurationFailure("AZURE_OPENAI_ENDPOINT is required for provider 'azure'")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "LLMConfig":
        env = os.environ if env is None else env
        provider = (env.get("LLM_PROVIDER") or "openai").strip().lower()

        if provider == "openai":
            return cls(
                provider_type=provider,
                api_key=env.get("OPENAI_API_KEY", ""),
                model_name=env.get("OPENAI_MODEL") or "gpt-4o",
                api_base=env.get("OPENAI_BASE_URL") or None,
            )
        if provider == "azure":
            return cls(
                provider_type=provider,
                api_key=env.get("AZURE_OPENAI_API_KEY", ""),
                model_name=env.get("AZURE_OPENAI_DEPLOYMENT") or "gpt-4o",
                api_base=env.get("AZURE_OPENAI_ENDPOINT") or None,
                api_version=env.get("AZURE_OPENAI_API_VERSION") or "2024-10-21",
            )
        if provider == "anthropic":
            return cls(
                provider_type=provider,
                api_key=env.get("ANTHROPIC_API_KEY", ""),
                model_name=env.get("ANTHROPIC_MODEL") or "claude-sonnet-4-20250514",
                api_base=env.get("ANTHROPIC_BASE_URL") or None,
            )
        raise ConfigurationFailure(
            f"Unknown LLM provider: {provider}. Available: openai, azure, anthropic"
        )


@dataclass
class OperatorConfig:
    """Configuration for run execution and browser provisioning."""

    goto_timeout_ms: int = 60000
    max_wait_ms: int = 60000
    max_steps: int = 50
    user_input_message: str = DEFAULT_USER_INPUT_MESSAGE
    temperature: float = 0.2
    max_tokens: int = 1024
    llm_timeout_seconds: float = 60.0
    headless: bool = True
    use_local_mode: bool = False
    browserbase_api_key: Optional[str] = None
    browserbase_project_id: Optional[str] = None
    browserbase_base_url: str = "https://api.browserbase.com"
    browserbase_connect_url: str = "wss://connect.browserbase.com"

    def __post_init__(self):
        if self.goto_timeout_ms <= 0:
            raise ConfigurationFailure("goto_timeout_ms must be positive")
        if self.max_wait_ms < 0:
            raise ConfigurationFailure("max_wait_ms must not be negative")
        if self.llm_timeout_seconds <= 0:
            raise ConfigurationFailure("llm_timeout_seconds must be positive")
        if self.max_steps < 2:
            raise ConfigurationFailure("max_steps must allow at least the start step and one decision")

    @property
    def local_mode(self) -> bool:
        return self.use_local_mode or not self.browserbase_api_key

    def require_browserbase(self) -> None:
        if not self.browserbase_api_key:
            raise ConfigurationFailure("BROWSERBASE_API_KEY not set")
        if not self.browserbase_project_id:
            raise ConfigurationFailure("BROWSERBASE_PROJECT_ID not set")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "OperatorConfig":
        env = os.environ if env is None else env
        try:
            cfg = cls(
                goto_timeout_ms=int(env.get("GOTO_TIMEOUT_MS") or 60000),
                max_wait_ms=int(env.get("MAX_WAIT_MS") or 60000),
                max_steps=int(env.get("MAX_STEPS") or 50),
                user_input_message=env.get("USER_INPUT_MESSAGE") or DEFAULT_USER_INPUT_MESSAGE,
                temperature=float(env.get("LLM_TEMPERATURE") or 0.2),
                llm_timeout_seconds=float(env.get("LLM_TIMEOUT_SECONDS") or 60.0),
                headless=_flag(env.get("HEADLESS"), default=True),
                use_local_mode=_flag(env.get("USE_LOCAL_MODE")),
                browserbase_api_key=env.get("BROWSERBASE_API_KEY") or None,
                browserbase_project_id=env.get("BROWSERBASE_PROJECT_ID") or None,
                browserbase_base_url=env.get("BROWSERBASE_BASE_URL") or "https://api.browserbase.com",
            )
        except ValueError as e:
            raise ConfigurationFailure(f"invalid numeric setting: {e}") from e
        if not cfg.local_mode:
            cfg.require_browserbase()
        return cfg
