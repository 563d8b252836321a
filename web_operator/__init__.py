"""
web_operator – an autonomous web-browsing agent loop.

Usage::

    import asyncio
    from web_operator import OperatorConfig, build_stack

    async def main():
        stack = build_stack(OperatorConfig(use_local_mode=True))
        session = await stack.sessions.open(timezone="Europe/Berlin")
        run = await stack.loop.run("price of stock X", session["sessionId"])
        for step in run.steps:
            print(step.step_number, step.tool.value, step.instruction)
        await stack.registry.release_all()

    asyncio.run(main())
"""

from .agent import AgentLoop, Run
from .config import LLMConfig, OperatorConfig
from .decision import DecisionEngine
from .errors import (
    ConfigurationFailure,
    ExecutionFailure,
    MalformedDecision,
    OperatorError,
    OracleFailure,
    ProvisioningFailure,
)
from .executor import StepExecutor
from .models import AppliedStep, NextStep, RunState, SessionState, StartingPoint, Step, Tool
from .region import select_region
from .registry import SessionRegistry
from .stack import OperatorStack, build_stack

__all__ = [
    "AgentLoop",
    "Run",
    "LLMConfig",
    "OperatorConfig",
    "DecisionEngine",
    "StepExecutor",
    "SessionRegistry",
    "OperatorStack",
    "build_stack",
    "select_region",
    "Step",
    "Tool",
    "NextStep",
    "AppliedStep",
    "StartingPoint",
    "RunState",
    "SessionState",
    "OperatorError",
    "ProvisioningFailure",
    "ExecutionFailure",
    "MalformedDecision",
    "OracleFailure",
    "ConfigurationFailure",
]
