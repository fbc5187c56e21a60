"""REST endpoints for the action server."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Request

from action_server.exceptions import ActionServerError, ToolStartupError
from action_server.sandbox.runner import ActionRunner

from .schemas import AskRequest, AskResponse, ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Ask ──────────────────────────────────────────────────────────────────────

@router.post(
    "/gemini/ask",
    tags=["gemini"],
    response_model=AskResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def ask(body: AskRequest, request: Request):
    """Execute the tool with the provided instruction and optional file attachments.

    A tool that runs but exits non-zero (or times out) still yields 200 with
    ``error`` set; 500 means the tool could not be run at all.
    """
    runner: ActionRunner = request.app.state.runner

    try:
        result = await runner.invoke(body.to_invocation())
    except ToolStartupError as exc:
        logger.error(
            "Tool failed to start: %s",
            exc.message,
            extra={"command": exc.command, "details": exc.details},
        )
        raise HTTPException(500, exc.message)
    except ActionServerError as exc:
        logger.error("Invocation failed: %s", exc.message, extra={"details": exc.details})
        raise HTTPException(500, exc.message)
    except Exception as exc:
        logger.error("Unexpected invocation error: %s", exc, exc_info=True)
        raise HTTPException(500, str(exc) or "Unknown error occurred")

    return AskResponse(**result.to_response())


# ── Health ───────────────────────────────────────────────────────────────────

@router.get("/health", tags=["health"], response_model=HealthResponse)
async def health(request: Request):
    """Liveness probe."""
    runner: ActionRunner = request.app.state.runner
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime=round(time.monotonic() - request.app.state.start_time, 3),
        running=runner.queue.pending,
        waiting=runner.queue.size,
    )
