"""FastAPI application for the action server.

Usage::

    action-server serve --port 3000

or directly with uvicorn::

    uvicorn action_server.service.app:app --host 127.0.0.1 --port 3000

NOTE: Run a single worker per scratch root. The admission queue is
in-process state, and the startup orphan sweep would delete the working
directories of a sibling worker sharing the same prefix.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from action_server import __version__
from action_server.logger import setup_logging
from action_server.sandbox.runner import ActionRunner

from .config import ServiceConfig
from .middleware import BodyLimitMiddleware
from .routes import router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Sweep orphaned directories before serving; report on shutdown."""
    svc_config: ServiceConfig = app.state.config

    if app.state.configure_logging:
        setup_logging(
            level=svc_config.log_level.upper(),
            service_name="action-server",
            log_file=svc_config.log_file or None,
        )

    runner: Optional[ActionRunner] = app.state.runner
    if runner is None:
        runner = ActionRunner(svc_config.to_sandbox_config())
        app.state.runner = runner

    logger.info(
        "Starting action server  command=%s  max_concurrent=%d  timeout_ms=%d  scratch_root=%s",
        runner.invoker.command_line,
        runner.queue.max_concurrency,
        runner.config.timeout_ms,
        runner.contexts.scratch_root,
    )
    await runner.start()
    app.state.start_time = time.monotonic()

    yield

    await runner.stop()
    logger.info("Action server stopped")


# ── Error shape ──────────────────────────────────────────────────────────────

async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code)


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        msg = str(err.get("msg", "invalid")).removeprefix("Value error, ")
        messages.append(f"{loc}: {msg}" if loc else msg)
    return JSONResponse({"error": "; ".join(messages)}, status_code=400)


def create_app(
    config: Optional[ServiceConfig] = None,
    runner: Optional[ActionRunner] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """Build and return the FastAPI application.

    ``runner`` may be supplied to share or stub the invocation pipeline;
    otherwise one is built from ``config`` at startup.
    """
    svc_config = config or ServiceConfig()

    application = FastAPI(
        title="Local Action Server",
        version=__version__,
        description=(
            "A lightweight server for triggering local command-line actions. "
            "Each request runs the tool in its own throwaway directory."
        ),
        lifespan=lifespan,
        servers=[
            {
                "url": f"http://{svc_config.host}:{svc_config.port}",
                "description": "Local development server",
            }
        ],
    )
    application.state.config = svc_config
    application.state.runner = runner
    application.state.configure_logging = configure_logging
    application.state.start_time = time.monotonic()

    application.add_middleware(BodyLimitMiddleware, limit=svc_config.body_limit)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(StarletteHTTPException, _http_error)
    application.add_exception_handler(RequestValidationError, _validation_error)
    application.include_router(router)
    return application


app = create_app()
