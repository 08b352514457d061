# recon_timeline/main.py
"""
Application entrypoint with timeline runtime lifecycle management.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from recon_timeline.config import settings
from recon_timeline.infrastructure.observability.logging import get_logger, setup_logging
from recon_timeline.routes import health, notifications, timeline, webhooks
from recon_timeline.services.timeline.evaluation_service import TimelineRuntime, build_runtime

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


def create_app(runtime: TimelineRuntime | None = None) -> FastAPI:
    """
    Build the FastAPI app.

    A runtime passed in is used as-is and left open on shutdown beyond
    draining its deliveries; otherwise one is built from settings.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Application starting",
            environment=settings.environment,
            debug=settings.debug,
            state_backend=settings.state_backend(),
        )

        if runtime is not None:
            app.state.runtime = runtime
        else:
            try:
                app.state.runtime = await build_runtime(settings)
            except Exception as e:
                logger.error("Failed to initialize timeline runtime", error=str(e))
                raise

        yield

        logger.info("Application shutting down")
        try:
            if runtime is not None:
                await app.state.runtime.dispatcher.drain()
            else:
                await app.state.runtime.shutdown()
            logger.info("Timeline runtime closed")
        except Exception as e:
            logger.error("Error closing timeline runtime", error=str(e))

    app = FastAPI(
        title="Recon Timeline Alerts",
        description="Reconditioning timeline alerts and notifications",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Include routers
    app.include_router(health.router)
    app.include_router(timeline.router)
    app.include_router(notifications.router)
    app.include_router(webhooks.router)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log HTTP requests with timing."""
        start_time = time.time()
        response = await call_next(request)
        process_time = (time.time() - start_time) * 1000

        logger.info(
            "HTTP request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(process_time, 2),
        )
        return response

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
