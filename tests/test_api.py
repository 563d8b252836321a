"""HTTP surface over the run-control operations."""
from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient

import api
from web_operator.config import OperatorConfig
from web_operator.provisioning import LocalProvisioner
from web_operator.stack import build_stack

from tests.conftest import FakeFactory, ScriptedLLM, start_reply, step_reply

SEARCH_URL = "https://www.google.com/search?q=stock+X"


@pytest.fixture
def stack():
    return build_stack(
        OperatorConfig(use_local_mode=True, max_wait_ms=50),
        llm=ScriptedLLM(),
        factory=FakeFactory(),
        provisioner=LocalProvisioner(),
    )


@pytest.fixture
def client(stack):
    api.app.dependency_overrides[api.get_stack] = lambda: stack
    with TestClient(api.app) as c:
        yield c
    api.app.dependency_overrides.clear()


def _poll(client: TestClient, run_id: str, state: str, timeout: float = 3.0) -> dict:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"/runs/{run_id}").json()
        if body["state"] == state:
            return body
        time.sleep(0.02)
    raise AssertionError(f"run {run_id} never reached {state}")


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "healthy"}


def test_create_session_local(client: TestClient) -> None:
    body = client.post("/session", json={"timezone": "Asia/Tokyo", "contextId": "ctx-keep"}).json()

    assert body["success"] is True
    assert body["sessionId"].startswith("local-")
    assert body["sessionUrl"] == "local://chromium-instance"
    assert body["contextId"] == "ctx-keep"
    assert body["region"] == "ap-southeast-1"
    assert body["isLocalMode"] is True


def test_step_by_step_flow(client: TestClient, stack) -> None:
    stack.llm.push(start_reply(SEARCH_URL), step_reply("EXTRACT", "price"), step_reply("CLOSE"))

    start = client.post("/agent", json={"action": "START", "goal": "price", "sessionId": "s1"}).json()
    assert start["result"]["tool"] == "GOTO"
    assert start["result"]["instruction"] == SEARCH_URL
    assert start["done"] is False

    nxt = client.post(
        "/agent",
        json={"action": "GET_NEXT_STEP", "goal": "price", "sessionId": "s1", "previousSteps": start["steps"]},
    ).json()
    assert nxt["result"]["tool"] == "EXTRACT"
    assert nxt["result"]["stepNumber"] == 2
    assert len(nxt["steps"]) == 2

    executed = client.post(
        "/agent", json={"action": "EXECUTE_STEP", "sessionId": "s1", "step": nxt["result"]}
    ).json()
    assert executed == {"success": True, "result": "$123.45", "done": False}

    close = client.post(
        "/agent",
        json={"action": "GET_NEXT_STEP", "goal": "price", "sessionId": "s1", "previousSteps": nxt["steps"]},
    ).json()
    assert close["done"] is True

    closed = client.post(
        "/agent", json={"action": "EXECUTE_STEP", "sessionId": "s1", "step": close["result"]}
    ).json()
    assert closed["done"] is True
    assert "s1" not in stack.registry


def test_execute_user_input_returns_message(client: TestClient) -> None:
    body = client.post(
        "/agent",
        json={
            "action": "EXECUTE_STEP",
            "sessionId": "s1",
            "step": {"text": "captcha", "reasoning": "", "tool": "USER_INPUT", "instruction": "Solve it"},
        },
    ).json()

    assert body == {"success": True, "message": "Solve it", "done": False}


def test_malformed_oracle_output_is_structured_error(client: TestClient, stack) -> None:
    stack.llm.push(start_reply(SEARCH_URL), "definitely not json")

    client.post("/agent", json={"action": "START", "goal": "g", "sessionId": "s1"})
    resp = client.post(
        "/agent",
        json={"action": "GET_NEXT_STEP", "goal": "g", "sessionId": "s1", "previousSteps": []},
    )

    assert resp.status_code == 502
    assert resp.json()["error"] == "malformed_decision"
    assert "Traceback" not in resp.text
    assert "s1" not in stack.registry


@pytest.mark.parametrize(
    "payload",
    [
        {"action": "START", "sessionId": "s1"},
        {"action": "DANCE", "goal": "g", "sessionId": "s1"},
        {"action": "START", "goal": "g"},
        {"action": "EXECUTE_STEP", "sessionId": "s1", "step": {"tool": "SCREENSHOT"}},
        {"action": "GET_NEXT_STEP", "goal": "g", "sessionId": "s1", "previousSteps": [{"tool": "FLY"}]},
    ],
)
def test_bad_requests(client: TestClient, payload: dict) -> None:
    resp = client.post("/agent", json=payload)

    assert resp.status_code == 400
    assert resp.json()["error"] == "bad_request"


def test_managed_run_with_pause(client: TestClient, stack) -> None:
    stack.llm.push(start_reply(SEARCH_URL), step_reply("USER_INPUT", "Log in please"), step_reply("CLOSE"))

    run_id = client.post("/runs", json={"goal": "g", "sessionId": "s1"}).json()["runId"]
    paused = _poll(client, run_id, "awaiting_user_input")
    assert paused["userInputMessage"] == "Log in please"

    assert client.post(f"/runs/{run_id}/resume").json() == {"success": True}
    done = _poll(client, run_id, "terminated")

    assert [s["tool"] for s in done["steps"]] == ["GOTO", "USER_INPUT", "CLOSE"]
    assert done["isTerminal"] is True
    assert done["error"] is None
    assert client.get(f"/runs/{run_id}").status_code == 404


def test_cancel_managed_run(client: TestClient, stack) -> None:
    stack.llm.push(start_reply(SEARCH_URL), step_reply("USER_INPUT"))

    run_id = client.post("/runs", json={"goal": "g", "sessionId": "s1"}).json()["runId"]
    _poll(client, run_id, "awaiting_user_input")

    body = client.delete(f"/runs/{run_id}").json()

    assert body["state"] == "terminated"
    assert "s1" not in stack.registry
    assert client.get(f"/runs/{run_id}").status_code == 404


def test_resume_run_that_is_not_paused() -> None:
    slow = build_stack(
        OperatorConfig(use_local_mode=True, max_wait_ms=50),
        llm=ScriptedLLM([start_reply(SEARCH_URL), step_reply("CLOSE")]),
        factory=FakeFactory(delay=0.5),
        provisioner=LocalProvisioner(),
    )
    api.app.dependency_overrides[api.get_stack] = lambda: slow
    try:
        with TestClient(api.app) as c:
            run_id = c.post("/runs", json={"goal": "g", "sessionId": "s1"}).json()["runId"]

            resp = c.post(f"/runs/{run_id}/resume")

            assert resp.status_code == 409
            assert c.delete(f"/runs/{run_id}").json()["state"] == "terminated"
    finally:
        api.app.dependency_overrides.clear()


def test_unknown_run(client: TestClient) -> None:
    resp = client.get("/runs/missing")
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


def test_cleanup_and_end_session(client: TestClient, stack) -> None:
    stack.llm.push(start_reply(SEARCH_URL), start_reply(SEARCH_URL))
    client.post("/agent", json={"action": "START", "goal": "g", "sessionId": "a"})
    client.post("/agent", json={"action": "START", "goal": "g", "sessionId": "b"})
    assert len(stack.registry) == 2

    assert client.request("DELETE", "/session", json={"sessionId": "a"}).json() == {"success": True}
    assert stack.registry.session_ids() == ["b"]

    assert client.post("/cleanup").json()["success"] is True
    assert len(stack.registry) == 0
