"""
Wiring for a complete operator: config, oracle, registry, loop and sessions.
"""

from dataclasses import dataclass
from typing import Optional

from .agent import AgentLoop
from .browser.base import BrowserFactory
from .config import LLMConfig, OperatorConfig
from .decision import DecisionEngine
from .executor import StepExecutor
from .llm import BaseLLMService, llm_service_from_config
from .provisioning import BaseProvisioner, SessionService, create_provisioner
from .registry import SessionRegistry


@dataclass
class OperatorStack:
    config: OperatorConfig
    llm: BaseLLMService
    registry: SessionRegistry
    executor: StepExecutor
    decisions: DecisionEngine
    loop: AgentLoop
    sessions: SessionService


def build_stack(
    config: Optional[OperatorConfig] = None,
    llm: Optional[BaseLLMService] = None,
    factory: Optional[BrowserFactory] = None,
    provisioner: Optional[BaseProvisioner] = None,
    llm_config: Optional[LLMConfig] = None,
) -> OperatorStack:
    """Build every component; missing collaborators come from the environment."""
    config = config or OperatorConfig.from_env()
    llm = llm or llm_service_from_config(
        llm_config,
        default_temperature=config.temperature,
        default_max_tokens=config.max_tokens,
        timeout_seconds=config.llm_timeout_seconds,
    )
    if factory is None:
        from .browser.playwright_browser import playwright_factory

        factory = playwright_factory(config, llm)

    registry = SessionRegistry(factory)
    executor = StepExecutor(registry, config)
    decisions = DecisionEngine(llm, config)
    loop = AgentLoop(registry, decisions, executor=executor, config=config)
    sessions = SessionService(provisioner or create_provisioner(config), registry)
    return OperatorStack(
        config=config,
        llm=llm,
        registry=registry,
        executor=executor,
        decisions=decisions,
        loop=loop,
        sessions=sessions,
    )
