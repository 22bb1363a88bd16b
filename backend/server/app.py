"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Build the StreamRuntime ONCE per process and attach it to app.state
- Start / stop the runtime with the app lifespan
- Register routes
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import AppConfig
from observability.logger import log_event
from runtime.stream_runtime import StartupError, StreamRuntime

from server.routes import log_ready, register_routes


def create_app(
    config: AppConfig | None = None,
    *,
    runtime: StreamRuntime | None = None,
    check_tools: bool = True,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with an injected runtime (fake image source, no ffmpeg)
    - Environment-specific setup
    - ASGI server compatibility
    """
    config = config or AppConfig.load_from_env()
    runtime = runtime or StreamRuntime(config=config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            await runtime.start(check_tools=check_tools)
        except StartupError as exc:
            log_event({
                "event_type": "STARTUP_FAILED",
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            raise

        log_ready(app)
        try:
            yield
        finally:
            await runtime.stop()

    app = FastAPI(title="Desktop Stream Server", lifespan=lifespan)

    app.state.config = config
    app.state.runtime = runtime

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # terminals do not send Origin; browsers debugging do
        allow_credentials=False,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    return app
