"""
TaskTrack API Server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tasktrack.api.v1 import router as api_v1_router
from tasktrack.core.config import get_settings
from tasktrack.core.database import get_session_context, init_db
from tasktrack.core.logging_setup import configure_logging
from tasktrack.core.middleware import RequestIdMiddleware, install_error_handlers
from tasktrack.services.roles import seed_catalog

settings = get_settings()
log = structlog.get_logger()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="TaskTrack",
        description="Scoped RBAC and task dependency tracking.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Middleware (order matters: outermost first)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )
    install_error_handlers(app)

    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.on_event("startup")
    async def on_startup():
        log.info("TaskTrack starting", debug=settings.debug)
        if settings.debug:
            await init_db()
        async with get_session_context() as session:
            await seed_catalog(session)

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("TaskTrack shutting down")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
