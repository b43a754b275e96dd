from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import BackgroundTasks, FastAPI, Header, Request
from fastapi.responses import JSONResponse

from app.bootstrap import BotRuntime
from app.config import load_config
from app.logging_setup import configure_logging
from slackbot.webhook_handler import HandlerResponse

DEFAULT_CONFIG_PATH = "config.yaml"

CONFIG_PATH = os.getenv("KBBOT_CONFIG_PATH", DEFAULT_CONFIG_PATH)
CONFIG = load_config(CONFIG_PATH)
configure_logging(CONFIG)
RUNTIME = BotRuntime(CONFIG)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    RUNTIME.store.start_sweeper()
    try:
        yield
    finally:
        await RUNTIME.store.aclose()


app = FastAPI(title="KB Request Bot", version="0.1.0", lifespan=lifespan)


def _respond(result: HandlerResponse, background_tasks: BackgroundTasks) -> JSONResponse:
    status_code, payload, job = result
    if job is not None:
        background_tasks.add_task(job)
    return JSONResponse(status_code=status_code, content=payload)


@app.get("/healthz")
async def healthz() -> JSONResponse:
    payload: dict[str, Any] = await asyncio.to_thread(RUNTIME.health.check)
    return JSONResponse(status_code=200 if payload["ok"] else 503, content=payload)


@app.post("/slack/events")
async def slack_events(
    request: Request,
    background_tasks: BackgroundTasks,
    x_slack_request_timestamp: str | None = Header(default=None),
    x_slack_signature: str | None = Header(default=None),
) -> JSONResponse:
    body = await request.body()
    result = RUNTIME.webhook_handler.handle_events(body, x_slack_request_timestamp, x_slack_signature)
    return _respond(result, background_tasks)


@app.post("/slack/commands")
async def slack_commands(
    request: Request,
    background_tasks: BackgroundTasks,
    x_slack_request_timestamp: str | None = Header(default=None),
    x_slack_signature: str | None = Header(default=None),
) -> JSONResponse:
    body = await request.body()
    result = RUNTIME.webhook_handler.handle_command(body, x_slack_request_timestamp, x_slack_signature)
    return _respond(result, background_tasks)


@app.post("/slack/interactions")
async def slack_interactions(
    request: Request,
    background_tasks: BackgroundTasks,
    x_slack_request_timestamp: str | None = Header(default=None),
    x_slack_signature: str | None = Header(default=None),
) -> JSONResponse:
    body = await request.body()
    result = RUNTIME.webhook_handler.handle_interaction(body, x_slack_request_timestamp, x_slack_signature)
    return _respond(result, background_tasks)
