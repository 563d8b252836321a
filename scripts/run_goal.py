#!/usr/bin/env python3
"""
Run one goal end to end from the terminal.

Opens a session, drives the agent loop, prints every step, and when the
agent asks for a human (captcha, login) waits for Enter before resuming.

    python scripts/run_goal.py "price of stock X" --timezone Europe/Berlin
"""

import argparse
import asyncio
import sys
from pathlib import Path

# ── Ensure the repo root is on sys.path ─────────────────────────
SCRIPT_DIR = Path(__file__).resolve().parent
REPO_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(REPO_ROOT))

# ── Load .env from the repo root ────────────────────────────────
from dotenv import load_dotenv

env_file = REPO_ROOT / ".env"
if env_file.exists():
    load_dotenv(env_file, override=True)

from loguru import logger

from web_operator import OperatorConfig, OperatorError, Run, Step, build_stack


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Drive the web operator on one goal")
    parser.add_argument("goal", help="What the agent should accomplish")
    parser.add_argument("--timezone", default=None, help="Client timezone, picks the browser region")
    parser.add_argument("--context-id", default=None, help="Reuse a persisted browser context")
    parser.add_argument("--local", action="store_true", help="Force a local browser")
    parser.add_argument("--headed", action="store_true", help="Show the local browser window")
    parser.add_argument("--max-steps", type=int, default=None)
    return parser.parse_args()


def log_step(run: Run, step: Step) -> None:
    logger.info(f"[{step.step_number}] {step.tool.value}: {step.instruction}")
    if step.reasoning:
        logger.debug(f"    reasoning: {step.reasoning}")


async def wait_for_user(run: Run) -> None:
    logger.warning(f"Manual action needed: {run.user_input_message}")
    await asyncio.to_thread(input, "Press Enter once you are done... ")
    run.resume()


async def main() -> int:
    args = parse_args()
    try:
        config = OperatorConfig.from_env()
        if args.local:
            config.use_local_mode = True
        if args.headed:
            config.headless = False
        if args.max_steps:
            config.max_steps = args.max_steps
        stack = build_stack(config)
    except OperatorError as e:
        logger.error(f"{e.kind}: {e.detail}")
        return 2

    session = await stack.sessions.open(timezone=args.timezone, context_id=args.context_id)
    logger.info(f"Session {session['sessionId']} ({session['region']}), live view: {session['sessionUrl']}")
    logger.info(f"Context id for reuse: {session['contextId']}")

    try:
        run = await stack.loop.run(
            args.goal,
            session["sessionId"],
            on_step=log_step,
            on_user_input=wait_for_user,
        )
    finally:
        await stack.sessions.end(session["sessionId"])

    if run.error:
        logger.error(f"Run failed: {run.error.kind}: {run.error.detail}")
        return 1
    logger.success(f"Run finished in {len(run.steps)} steps")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
