"""
Serverless entry point for Test Relay.

Accepts the invocation event directly or wrapped in an HTTP proxy
envelope (``{"body": "<json>"}``) and returns the outcome mapping.
"""

import asyncio
import json
from typing import Any, Dict, Optional

from .core.config import Config
from .core.exceptions import RelayError
from .core.logging_config import get_logger, setup_logging
from .execution.models import RunOutcome
from .orchestrator import RunOrchestrator


# Seconds kept back from the host's remaining time to report the outcome
DEADLINE_MARGIN = 10.0

_orchestrator: Optional[RunOrchestrator] = None


def get_orchestrator() -> RunOrchestrator:
    """Build the process-wide orchestrator on first use."""
    global _orchestrator
    if _orchestrator is None:
        config = Config.from_env()
        setup_logging(config)
        config.validate()
        _orchestrator = RunOrchestrator.from_config(config)
    return _orchestrator


def unwrap_event(event: Any) -> Any:
    """Return the request payload from a direct or proxied invocation."""
    if isinstance(event, dict) and isinstance(event.get("body"), str):
        try:
            return json.loads(event["body"])
        except json.JSONDecodeError:
            return None
    return event


def remaining_seconds(context: Any) -> Optional[float]:
    """Time budget derived from the invocation context, if it exposes one."""
    get_remaining = getattr(context, "get_remaining_time_in_millis", None)
    if get_remaining is None:
        return None
    return max(0.0, get_remaining() / 1000.0 - DEADLINE_MARGIN)


def handler(event: Any, context: Any = None) -> Dict[str, Any]:
    """
    Run the test suite for one invocation.

    Args:
        event: ``{"url": ..., "uuid": ..., "grep": ...}`` or a proxy envelope
        context: Optional invocation context with remaining-time information

    Returns:
        ``{"statusCode", "message", "resultUri"?}``
    """
    try:
        orchestrator = get_orchestrator()
    except RelayError as e:
        get_logger("testrelay.handler").error(
            f"Test Relay is misconfigured: {e.message}",
            extra={"metadata": e.to_dict()},
        )
        return RunOutcome.from_error(e).to_response()
    except Exception as e:
        get_logger("testrelay.handler").error(
            f"Test Relay failed to start: {e}",
            extra={"metadata": {"error_type": type(e).__name__}},
        )
        return RunOutcome.internal_error(f"Test Relay failed to start: {e}").to_response()

    outcome = asyncio.run(
        orchestrator.run(unwrap_event(event), deadline=remaining_seconds(context))
    )
    return outcome.to_response()
