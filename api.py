from typing import Any, Dict, List, Optional

import logging

from fastapi import Body, Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from web_operator import OperatorStack, build_stack
from web_operator.errors import (
    ConfigurationFailure,
    ExecutionFailure,
    MalformedDecision,
    OperatorError,
    OracleFailure,
    ProvisioningFailure,
)
from web_operator.models import Step, Tool, steps_from_dicts

logger = logging.getLogger(__name__)

app = FastAPI(title="Web Operator API")

_STATUS_BY_KIND = {
    ConfigurationFailure.kind: 503,
    ProvisioningFailure.kind: 502,
    OracleFailure.kind: 502,
    MalformedDecision.kind: 502,
    ExecutionFailure.kind: 500,
}

_stack: Optional[OperatorStack] = None


def get_stack() -> OperatorStack:
    global _stack
    if _stack is None:
        _stack = build_stack()
    return _stack


class BadRequest(Exception):
    def __init__(self, detail: str, status_code: int = 400):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


@app.exception_handler(OperatorError)
async def operator_error_handler(request: Request, exc: OperatorError) -> JSONResponse:
    body = {"success": False, **exc.to_dict()}
    return JSONResponse(body, status_code=_STATUS_BY_KIND.get(exc.kind, 500))


@app.exception_handler(BadRequest)
async def bad_request_handler(request: Request, exc: BadRequest) -> JSONResponse:
    kind = {404: "not_found", 409: "conflict"}.get(exc.status_code, "bad_request")
    return JSONResponse(
        {"success": False, "error": kind, "detail": exc.detail},
        status_code=exc.status_code,
    )


def _require(payload: Dict[str, Any], key: str) -> Any:
    value = payload.get(key)
    if not value:
        raise BadRequest(f"missing {key} in request body")
    return value


def _decode_steps(items: Any) -> List[Step]:
    if not isinstance(items, list):
        raise BadRequest("previousSteps must be a list")
    try:
        return steps_from_dicts(items)
    except MalformedDecision as e:
        raise BadRequest(f"invalid previousSteps: {e.detail}")


def _decode_step(item: Any, default_number: int) -> Step:
    if not isinstance(item, dict):
        raise BadRequest("step must be an object")
    has_number = "stepNumber" in item or "step_number" in item
    try:
        return Step.from_dict(item, step_number=None if has_number else default_number)
    except MalformedDecision as e:
        raise BadRequest(f"invalid step: {e.detail}")


async def _release_on_failure(stack: OperatorStack, session_id: str, exc: OperatorError) -> None:
    logger.error(f"Session {session_id} failed: {exc.kind}: {exc.detail}")
    await stack.registry.release(session_id)


@app.get("/health", summary="Health check")
async def health() -> Dict[str, str]:
    return {"status": "healthy"}


# ── Sessions ─────────────────────────────────────────────────────


@app.post("/session", summary="Provision a browser session")
async def create_session(
    payload: Dict[str, Any] = Body(default={}),
    stack: OperatorStack = Depends(get_stack),
) -> Dict[str, Any]:
    session = await stack.sessions.open(
        timezone=payload.get("timezone"),
        context_id=payload.get("contextId"),
    )
    return {"success": True, **session}


@app.delete("/session", summary="End a browser session")
async def end_session(
    payload: Dict[str, Any] = Body(...),
    stack: OperatorStack = Depends(get_stack),
) -> Dict[str, Any]:
    await stack.sessions.end(_require(payload, "sessionId"))
    return {"success": True}


@app.post("/cleanup", summary="Close every browser session")
async def cleanup(stack: OperatorStack = Depends(get_stack)) -> Dict[str, Any]:
    await stack.registry.release_all()
    return {"success": True, "message": "All browser sessions closed"}


# ── Step-by-step control ─────────────────────────────────────────


@app.post("/agent", summary="Start, decide or execute one step")
async def agent(
    payload: Dict[str, Any] = Body(...),
    stack: OperatorStack = Depends(get_stack),
) -> Dict[str, Any]:
    """
    Step-by-step run control for a client that keeps the history itself.

    ``action`` is one of ``START``, ``GET_NEXT_STEP`` or ``EXECUTE_STEP``.
    """
    session_id = _require(payload, "sessionId")
    action = payload.get("action")
    loop = stack.loop

    try:
        if action == "START":
            goal = _require(payload, "goal")
            first = await loop.start(goal, session_id)
            return {"success": True, "result": first.to_dict(), "steps": [first.to_dict()], "done": False}

        if action == "GET_NEXT_STEP":
            goal = _require(payload, "goal")
            history = _decode_steps(payload.get("previousSteps") or [])
            decided = await loop.next(goal, session_id, history, payload.get("previousExtraction"))
            steps = history + [decided.step]
            return {
                "success": True,
                "result": decided.step.to_dict(),
                "steps": [s.to_dict() for s in steps],
                "done": decided.is_terminal,
            }

        if action == "EXECUTE_STEP":
            history = payload.get("previousSteps") or []
            step = _decode_step(_require(payload, "step"), default_number=len(history) + 1)
            applied = await loop.apply(session_id, step)
            if step.tool is Tool.USER_INPUT:
                return {"success": True, "message": applied.message, "done": False}
            return {"success": True, "result": applied.result, "done": applied.is_terminal}
    except OperatorError as e:
        await _release_on_failure(stack, session_id, e)
        raise

    raise BadRequest(f"invalid action: {action!r}")


# ── Managed runs ─────────────────────────────────────────────────


def _get_run(stack: OperatorStack, run_id: str):
    run = stack.loop.get_run(run_id)
    if run is None:
        raise BadRequest(f"unknown run: {run_id}", status_code=404)
    return run


def _snapshot(stack: OperatorStack, run) -> Dict[str, Any]:
    body = {"success": True, **run.to_dict()}
    if run.is_terminated:
        stack.loop.forget(run.run_id)
    return body


@app.post("/runs", summary="Start a run in the background")
async def start_run(
    payload: Dict[str, Any] = Body(...),
    stack: OperatorStack = Depends(get_stack),
) -> Dict[str, Any]:
    run = stack.loop.spawn(_require(payload, "goal"), _require(payload, "sessionId"))
    return {"success": True, "runId": run.run_id}


@app.get("/runs/{run_id}", summary="Run snapshot")
async def get_run(run_id: str, stack: OperatorStack = Depends(get_stack)) -> Dict[str, Any]:
    """Snapshot of a run. A terminal snapshot is served once, then the run is dropped."""
    return _snapshot(stack, _get_run(stack, run_id))


@app.post("/runs/{run_id}/resume", summary="Continue after the user handled a pause")
async def resume_run(run_id: str, stack: OperatorStack = Depends(get_stack)) -> Dict[str, Any]:
    run = _get_run(stack, run_id)
    resumed = stack.loop.resume_after_user_input(run.run_id)
    if not resumed:
        raise BadRequest(f"run {run_id} is not waiting for user input", status_code=409)
    return {"success": True}


@app.delete("/runs/{run_id}", summary="Cancel a run")
async def cancel_run(run_id: str, stack: OperatorStack = Depends(get_stack)) -> Dict[str, Any]:
    run = _get_run(stack, run_id)
    await stack.loop.cancel(run.run_id)
    return _snapshot(stack, run)


if __name__ == "__main__":
    import uvicorn
    from dotenv import load_dotenv

    load_dotenv()
    uvicorn.run("api:app", host="0.0.0.0", port=8000, reload=True)
