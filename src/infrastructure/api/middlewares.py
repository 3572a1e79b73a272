from __future__ import annotations

import os

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from src.domain.errors import EditorError

logger = structlog.get_logger("api")


def add_default_middlewares(app: FastAPI) -> None:
    # CORS configuration
    # In development/demo mode, allow common frontend origins
    env = os.getenv("ENV", "development")

    if env in ("development", "staging"):
        allowed_origins = [
            "http://localhost:3000",
            "http://localhost:5173",  # Vite default
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ]
    else:
        allowed_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def add_error_handlers(app: FastAPI) -> None:
    """Render editor errors raised outside the action dispatcher as the action envelope."""

    @app.exception_handler(EditorError)
    async def editor_error_handler(request: Request, exc: EditorError) -> JSONResponse:
        logger.info("request_rejected", path=request.url.path, error_type=type(exc).__name__, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.payload())
