"""
HTTP surface for Test Relay.

``POST /runs`` executes one run and answers with the outcome, using the
outcome's status code as the HTTP status. ``GET /health`` reports
liveness and the active backends.

All runs in one server process share the configured result directory,
so runs are executed one at a time and the directory is emptied before
each run.
"""

import asyncio
import json
import shutil
from pathlib import Path

from aiohttp import web

from . import __version__
from .core.config import Config
from .core.exceptions import BadRequestError
from .core.logging_config import get_logger
from .execution.models import RunOutcome
from .orchestrator import RunOrchestrator


ORCHESTRATOR_KEY = web.AppKey("orchestrator", RunOrchestrator)
RUN_LOCK_KEY = web.AppKey("run_lock", asyncio.Lock)

logger = get_logger("testrelay.server")


def clear_results_dir(results_dir: Path) -> None:
    """Remove whatever a previous run left in the result directory."""
    if results_dir.is_dir():
        shutil.rmtree(results_dir)


async def handle_run(request: web.Request) -> web.Response:
    orchestrator = request.app[ORCHESTRATOR_KEY]

    try:
        payload = await request.json()
    except json.JSONDecodeError:
        outcome = RunOutcome.from_error(
            BadRequestError("Invalid payload: body is not valid JSON")
        )
        return web.json_response(outcome.to_response(), status=outcome.status_code)

    lock = request.app[RUN_LOCK_KEY]
    if lock.locked():
        logger.info("Run queued behind the run in progress")

    async with lock:
        await asyncio.to_thread(clear_results_dir, orchestrator.config.results_dir)
        outcome = await orchestrator.run(payload)
    return web.json_response(outcome.to_response(), status=outcome.status_code)


async def handle_health(request: web.Request) -> web.Response:
    config = request.app[ORCHESTRATOR_KEY].config
    return web.json_response(
        {
            "status": "ok",
            "version": __version__,
            "busy": request.app[RUN_LOCK_KEY].locked(),
            "storage_backend": config.storage_backend,
            "log_backend": config.log_backend,
        }
    )


def create_app(orchestrator: RunOrchestrator) -> web.Application:
    """Create the aiohttp application around an orchestrator."""
    app = web.Application()
    app[ORCHESTRATOR_KEY] = orchestrator
    app[RUN_LOCK_KEY] = asyncio.Lock()
    app.router.add_post("/runs", handle_run)
    app.router.add_get("/health", handle_health)
    return app


def run_server(config: Config, host: str = "0.0.0.0", port: int = 8080) -> None:
    """Serve the HTTP surface until interrupted."""
    app = create_app(RunOrchestrator.from_config(config))
    logger.info(f"Serving Test Relay on {host}:{port}")
    web.run_app(app, host=host, port=port, print=None)
