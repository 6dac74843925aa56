"""
Matchmaking engine application with store backend lifecycle management.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.config import settings
from app.features.matchmaking.api import register_exception_handlers
from app.features.matchmaking.api import router as matchmaking_router
from app.features.matchmaking.services import (
    MatchmakingContainer,
    backend_resources,
    build_container,
)
from app.infrastructure.observability.logging import get_logger, log_request, setup_logging
from app.middleware import RequestContextMiddleware
from app.routes import health

# Setup logging before creating the app
setup_logging(
    log_level=settings.LOG_LEVEL, json_logs=not settings.debug, environment=settings.environment
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""
    logger.info(
        "Application starting",
        environment=settings.environment,
        debug=settings.debug,
        store_backend=settings.STORE_BACKEND,
    )

    async with backend_resources():
        # A container injected up front (tests, embedding) wins over the configured backend
        if getattr(app.state, "matchmaking", None) is None:
            app.state.matchmaking = build_container()
        yield
        logger.info("Application shutting down")


def create_app(container: MatchmakingContainer | None = None) -> FastAPI:
    app = FastAPI(
        title="Matchmaking Engine",
        description="Attendee matchmaking, interaction graph and meeting scheduling",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.matchmaking = container

    register_exception_handlers(app)

    # Include routers
    app.include_router(health.router)
    app.include_router(matchmaking_router)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log HTTP requests with timing."""
        start_time = time.time()
        response = await call_next(request)
        process_time = (time.time() - start_time) * 1000

        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path)
        log_request(request.method, path, response.status_code, round(process_time, 2))
        return response

    # Added last so it runs first and the request id is bound for the timing log
    app.add_middleware(RequestContextMiddleware)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
