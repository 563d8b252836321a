"""Environment-driven configuration."""
from __future__ import annotations

import pytest

from web_operator.config import DEFAULT_USER_INPUT_MESSAGE, LLMConfig, OperatorConfig
from web_operator.errors import ConfigurationFailure


def test_operator_defaults_from_empty_env() -> None:
    cfg = OperatorConfig.from_env({})

    assert cfg.goto_timeout_ms == 60000
    assert cfg.max_steps == 50
    assert cfg.user_input_message == DEFAULT_USER_INPUT_MESSAGE
    assert cfg.headless is True
    assert cfg.local_mode is True


def test_operator_env_overrides() -> None:
    cfg = OperatorConfig.from_env(
        {
            "USE_LOCAL_MODE": "true",
            "HEADLESS": "0",
            "MAX_STEPS": "12",
            "MAX_WAIT_MS": "500",
            "BROWSERBASE_API_KEY": "bb",
        }
    )

    assert cfg.local_mode is True
    assert cfg.headless is False
    assert cfg.max_steps == 12
    assert cfg.max_wait_ms == 500


def test_remote_mode_needs_project_id() -> None:
    with pytest.raises(ConfigurationFailure, match="BROWSERBASE_PROJECT_ID"):
        OperatorConfig.from_env({"BROWSERBASE_API_KEY": "bb"})

    cfg = OperatorConfig.from_env({"BROWSERBASE_API_KEY": "bb", "BROWSERBASE_PROJECT_ID": "p"})
    assert cfg.local_mode is False


@pytest.mark.parametrize(
    "env",
    [{"MAX_STEPS": "many"}, {"MAX_STEPS": "1"}, {"GOTO_TIMEOUT_MS": "0"}, {"MAX_WAIT_MS": "-1"}],
)
def test_invalid_operator_settings(env) -> None:
    with pytest.raises(ConfigurationFailure):
        OperatorConfig.from_env(env)


def test_llm_openai_default() -> None:
    cfg = LLMConfig.from_env({"OPENAI_API_KEY": "sk"})

    assert cfg.provider_type == "openai"
    assert cfg.model_name == "gpt-4o"
    assert cfg.api_base is None


def test_llm_azure() -> None:
    cfg = LLMConfig.from_env(
        {
            "LLM_PROVIDER": "Azure",
            "AZURE_OPENAI_API_KEY": "az",
            "AZURE_OPENAI_ENDPOINT": "https://x.openai.azure.com",
            "AZURE_OPENAI_DEPLOYMENT": "gpt-4o-prod",
        }
    )

    assert cfg.provider_type == "azure"
    assert cfg.model_name == "gpt-4o-prod"
    assert cfg.api_version


def test_llm_anthropic() -> None:
    cfg = LLMConfig.from_env({"LLM_PROVIDER": "anthropic", "ANTHROPIC_API_KEY": "ak", "ANTHROPIC_MODEL": "m"})

    assert (cfg.provider_type, cfg.api_key, cfg.model_name) == ("anthropic", "ak", "m")


@pytest.mark.parametrize(
    "env",
    [
        {},
        {"LLM_PROVIDER": "cohere", "OPENAI_API_KEY": "sk"},
        {"LLM_PROVIDER": "azure", "AZURE_OPENAI_API_KEY": "az"},
    ],
)
def test_llm_misconfiguration(env) -> None:
    with pytest.raises(ConfigurationFailure):
        LLMConfig.from_env(env)
