"""
Agent loop – the run state machine.

A run:
1. Asks the oracle for a starting URL and navigates there (step 1)
2. Asks the oracle for the next step and records it
3. Executes it, pausing for a human on USER_INPUT
4. Repeats until the oracle answers CLOSE or a step fails
"""

import asyncio
import inspect
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .config import OperatorConfig
from .decision import DecisionEngine
from .errors import ExecutionFailure, OperatorError
from .executor import StepExecutor
from .models import (
    EXTRACTION_TOOLS,
    AppliedStep,
    NextStep,
    RunState,
    Step,
    Tool,
)
from .registry import SessionRegistry

logger = logging.getLogger(__name__)

StepCallback = Callable[["Run", Step], Union[None, Awaitable[None]]]
RunCallback = Callable[["Run"], Union[None, Awaitable[None]]]

_TRANSITIONS = {
    RunState.NOT_STARTED: {RunState.SELECTING_START, RunState.TERMINATED},
    RunState.SELECTING_START: {RunState.DECIDING, RunState.TERMINATED},
    RunState.DECIDING: {RunState.EXECUTING, RunState.TERMINATED},
    RunState.EXECUTING: {RunState.DECIDING, RunState.AWAITING_USER_INPUT, RunState.TERMINATED},
    RunState.AWAITING_USER_INPUT: {RunState.DECIDING, RunState.TERMINATED},
    RunState.TERMINATED: set(),
}


class Run:
    """
    One goal being worked on in one session.

    Owns its history and its own suspension handle, so runs paused at the
    same time never interfere.
    """

    def __init__(self, goal: str, session_id: str, run_id: Optional[str] = None):
        self.run_id = run_id or uuid.uuid4().hex
        self.goal = goal
        self.session_id = session_id
        self.state = RunState.NOT_STARTED
        self.latest_extraction: Any = None
        self.user_input_message: Optional[str] = None
        self.error: Optional[OperatorError] = None
        self._steps: List[Step] = []
        self._resume = asyncio.Event()
        self._done = asyncio.Event()

    # ── State ────────────────────────────────────────────────────

    @property
    def steps(self) -> List[Step]:
        return list(self._steps)

    @property
    def is_terminated(self) -> bool:
        return self.state is RunState.TERMINATED

    @property
    def succeeded(self) -> bool:
        return self.is_terminated and self.error is None

    def transition(self, state: RunState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"run {self.run_id}: illegal transition {self.state.value} -> {state.value}")
        logger.debug(f"Run {self.run_id}: {self.state.value} -> {state.value}")
        self.state = state

    def record(self, step: Step) -> None:
        if self.is_terminated:
            raise RuntimeError(f"run {self.run_id} is terminated; cannot record step")
        expected = len(self._steps) + 1
        if step.step_number != expected:
            raise RuntimeError(f"run {self.run_id}: expected step {expected}, got {step.step_number}")
        self._steps.append(step)

    def terminate(self, error: Optional[OperatorError] = None) -> None:
        if not self.is_terminated:
            self.state = RunState.TERMINATED
        if error is not None and self.error is None:
            self.error = error
        self.user_input_message = None
        self._done.set()

    # ── Suspension ───────────────────────────────────────────────

    def suspend(self, message: str) -> None:
        self.transition(RunState.AWAITING_USER_INPUT)
        self.user_input_message = message
        self._resume.clear()

    def resume(self) -> bool:
        """Signal the paused run to continue. Returns False when not paused."""
        if self.state is not RunState.AWAITING_USER_INPUT or self._resume.is_set():
            return False
        self._resume.set()
        return True

    async def wait_for_resume(self) -> None:
        await self._resume.wait()
        self.user_input_message = None

    async def wait_until_done(self) -> None:
        await self._done.wait()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runId": self.run_id,
            "goal": self.goal,
            "sessionId": self.session_id,
            "state": self.state.value,
            "steps": [s.to_dict() for s in self._steps],
            "userInputMessage": self.user_input_message,
            "isTerminal": self.is_terminated,
            "error": self.error.to_dict() if self.error else None,
        }


class AgentLoop:
    """
    Ties the decision engine, the executor and the registry together.

    Example::

        loop = AgentLoop(registry, decisions, config=OperatorConfig())
        run = await loop.run("price of stock X", session_id)
        print([s.tool for s in run.steps])
    """

    def __init__(
        self,
        registry: SessionRegistry,
        decisions: DecisionEngine,
        executor: Optional[StepExecutor] = None,
        config: Optional[OperatorConfig] = None,
    ):
        self.config = config or OperatorConfig()
        self.registry = registry
        self.decisions = decisions
        self.executor = executor or StepExecutor(registry, self.config)
        self._runs: Dict[str, Run] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    # ── Run-control surface ──────────────────────────────────────

    async def start(self, goal: str, session_id: str) -> Step:
        """Pick a starting URL, navigate there and return it as step 1."""
        start = await self.decisions.select_starting_url(goal)
        first = Step(
            text=f"Navigating to {start.url}",
            reasoning=start.reasoning,
            tool=Tool.GOTO,
            instruction=start.url,
            step_number=1,
        )
        await self.executor.execute(session_id, Tool.GOTO, start.url)
        return first

    async def next(
        self,
        goal: str,
        session_id: str,
        history: List[Step],
        latest_extraction: Any = None,
    ) -> NextStep:
        """Ask the oracle for the step after *history*."""
        screenshot = None
        if any(s.tool is Tool.GOTO for s in history):
            screenshot = await self.executor.execute(session_id, Tool.SCREENSHOT)
        current_url = await self.executor.current_url(session_id) if history else ""
        step = await self.decisions.decide(
            goal,
            history,
            latest_extraction=latest_extraction,
            screenshot=screenshot,
            current_url=current_url,
        )
        return NextStep(step=step, is_terminal=step.is_terminal)

    async def apply(self, session_id: str, step: Step) -> AppliedStep:
        """Execute one recorded step."""
        result = await self.executor.execute(session_id, step.tool, step.instruction)
        if step.tool is Tool.USER_INPUT:
            return AppliedStep(result=result, is_terminal=False, message=result["message"])
        return AppliedStep(result=result, is_terminal=step.is_terminal)

    def resume_after_user_input(self, run_id: str) -> bool:
        run = self._runs.get(run_id)
        if run is None:
            raise KeyError(run_id)
        resumed = run.resume()
        if resumed:
            logger.info(f"Run {run_id} resumed after user input")
        return resumed

    # ── Managed runs ─────────────────────────────────────────────

    def create_run(self, goal: str, session_id: str) -> Run:
        run = Run(goal, session_id)
        self._runs[run.run_id] = run
        return run

    def get_run(self, run_id: str) -> Optional[Run]:
        return self._runs.get(run_id)

    def forget(self, run_id: str) -> None:
        """Drop a terminated run's bookkeeping. Live runs are kept."""
        run = self._runs.get(run_id)
        if run is not None and run.is_terminated:
            self._runs.pop(run_id, None)
            self._tasks.pop(run_id, None)

    async def run(
        self,
        goal: str,
        session_id: str,
        on_step: Optional[StepCallback] = None,
        on_user_input: Optional[RunCallback] = None,
    ) -> Run:
        """Create a run and drive it to termination.

        The finished run is returned and not kept by the loop.
        """
        run = self.create_run(goal, session_id)
        try:
            await self.drive(run, on_step=on_step, on_user_input=on_user_input)
        finally:
            self.forget(run.run_id)
        return run

    def spawn(
        self,
        goal: str,
        session_id: str,
        on_step: Optional[StepCallback] = None,
        on_user_input: Optional[RunCallback] = None,
    ) -> Run:
        """Create a run and drive it in a background task.

        The run stays retrievable with `get_run` until `forget` is called.
        """
        run = self.create_run(goal, session_id)
        task = asyncio.create_task(self.drive(run, on_step=on_step, on_user_input=on_user_input))
        self._tasks[run.run_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(run.run_id, None))
        return run

    async def cancel(self, run_id: str) -> None:
        """Discard a run; its session is released."""
        run = self._runs.get(run_id)
        if run is None:
            raise KeyError(run_id)
        task = self._tasks.get(run_id)
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        # A task cancelled before its first step never reaches drive's handler.
        if not run.is_terminated:
            await self.registry.release(run.session_id)
            run.terminate()

    async def drive(
        self,
        run: Run,
        on_step: Optional[StepCallback] = None,
        on_user_input: Optional[RunCallback] = None,
    ) -> Run:
        """Walk *run* through the state machine until it terminates.

        Operator errors end the run with ``run.error`` set; they are not
        raised. Cancellation releases the session and propagates.
        """
        self._runs.setdefault(run.run_id, run)
        self._tasks.setdefault(run.run_id, asyncio.current_task())
        try:
            run.transition(RunState.SELECTING_START)
            first = await self.start(run.goal, run.session_id)
            await self._record(run, first, on_step)

            while True:
                run.transition(RunState.DECIDING)
                if len(run.steps) >= self.config.max_steps:
                    raise ExecutionFailure(f"run exceeded {self.config.max_steps} steps", tool="max_steps")

                decided = await self.next(run.goal, run.session_id, run.steps, run.latest_extraction)
                step = decided.step
                await self._record(run, step, on_step)

                if decided.is_terminal:
                    await self.apply(run.session_id, step)
                    run.terminate()
                    logger.info(f"Run {run.run_id} finished after {len(run.steps)} steps")
                    return run

                run.transition(RunState.EXECUTING)
                applied = await self.apply(run.session_id, step)

                if step.tool is Tool.USER_INPUT:
                    run.suspend(applied.message)
                    logger.info(f"Run {run.run_id} waiting for user input: {applied.message}")
                    await _maybe_await(on_user_input, run)
                    await run.wait_for_resume()
                    continue

                run.latest_extraction = applied.result if step.tool in EXTRACTION_TOOLS else None

        except OperatorError as e:
            logger.error(f"Run {run.run_id} failed: {e.kind}: {e.detail}")
            await self.registry.release(run.session_id)
            run.terminate(e)
            return run
        except Exception as e:
            logger.exception(f"Run {run.run_id} crashed: {e}")
            await self.registry.release(run.session_id)
            run.terminate(ExecutionFailure(f"{type(e).__name__}: {e}"))
            return run
        except asyncio.CancelledError:
            logger.info(f"Run {run.run_id} cancelled in state {run.state.value}")
            await asyncio.shield(self.registry.release(run.session_id))
            run.terminate()
            raise

    async def _record(self, run: Run, step: Step, on_step: Optional[StepCallback]) -> None:
        run.record(step)
        await _maybe_await(on_step, run, step)


async def _maybe_await(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result
