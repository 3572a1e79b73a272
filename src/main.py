from __future__ import annotations

import os

import uvicorn
from fastapi import FastAPI

from src.application.dtos.common_dto import HealthResponse, RootResponse
from src.infrastructure.api.middlewares import add_default_middlewares, add_error_handlers
from src.infrastructure.api.routes.design_routes import router as design_router
from src.infrastructure.api.routes.editor_routes import router as editor_router
from src.infrastructure.api.routes.media_routes import router as media_router
from src.infrastructure.logging import configure_logging


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Design Editor Backend",
        version="0.1.0",
        description="""
        ## Design Editor Backend API

        Prompt-driven image editing sessions for merchandise designs. Each edit
        sends the current image and an instruction to an image-generation
        provider (Gemini or OpenAI) and stores the result as a new version.

        ### Features
        - **Photo editor**: upload a photo, then edit it prompt by prompt
        - **Design editor**: edit an existing design record the same way
        - **Undo**: step back along the chain of versions an edit was built on
        - **Rollback**: make any stored version the base for the next edit
        - **History**: every version is kept, newest first, per session

        ### Sessions
        The photo editor is scoped by a session cookie issued on first use; the
        design editor is scoped by the design id in the URL.

        ### Responses
        Every action answers a JSON envelope. Success: `{"ok": 1, ...}`.
        Failure: `{"ok": 0, "error": "..."}` with one of these statuses:
        - **400 Bad Request**: missing prompt or file, unknown action
        - **404 Not Found**: design record does not exist
        - **409 Conflict**: a stored image the action depends on is missing
        - **500 Internal Server Error**: session history could not be read or written
        - **502 Bad Gateway**: the image provider failed or returned no image
        """,
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )
    add_default_middlewares(app)
    add_error_handlers(app)

    @app.get(
        "/",
        response_model=RootResponse,
        summary="API Root",
        description="Get basic information about the Design Editor API",
    )
    def root():
        """Get API root information."""
        return {"status": "ok", "service": "design-editor-backend", "version": app.version}

    @app.get(
        "/health",
        response_model=HealthResponse,
        summary="Health Check",
        description="Check if the API service is running and healthy",
    )
    def health():
        """Check API health status."""
        return {"status": "healthy"}

    app.include_router(editor_router)
    app.include_router(design_router)
    app.include_router(media_router)
    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn, e.g. ``design-editor`` or ``python -m src.main``."""
    uvicorn.run(
        "src.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("ENV", "development") == "development",
    )


if __name__ == "__main__":
    run()
