"""
FastAPI application factory for the SmileQuest engagement engine.

Lifecycle
---------
startup:  setup_logging() -> Config.validate() -> container.initialize()
shutdown: container.shutdown() -> shutdown_logging()

The schema is not created here; run scripts/init_db.py at deploy time.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request

from smilequest import __version__
from smilequest.api.errors import register_exception_handlers
from smilequest.api.routes import health_router, quests_router, wear_router
from smilequest.core.config.config import Config
from smilequest.core.config.manager import ConfigManager
from smilequest.core.container import ServiceContainer
from smilequest.core.logging.logger import (
    LogContext,
    get_logger,
    setup_logging,
    shutdown_logging,
)

logger = get_logger(__name__)


def create_app(
    container: Optional[ServiceContainer] = None,
    *,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Build the application around a service container.

    Args:
        container: Prebuilt container (tests inject one bound to a scratch
            database); defaults to one built from Config
        configure_logging: Install the logging pipeline on startup
    """
    container = container or ServiceContainer(ConfigManager(Config.CONFIG_DIR))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if configure_logging:
            setup_logging()
        Config.validate()
        await container.initialize()
        logger.info("SmileQuest API started", extra={"version": __version__})
        try:
            yield
        finally:
            await container.shutdown()
            if configure_logging:
                shutdown_logging()

    app = FastAPI(
        title="SmileQuest Engagement API",
        description="Aligner wear tracking, streaks, missions and quests",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.container = container

    @app.middleware("http")
    async def bind_correlation_id(request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID")
        with LogContext(correlation_id=correlation_id, component="api") as ctx:
            response = await call_next(request)
        response.headers["X-Correlation-ID"] = ctx.context["correlation_id"]
        return response

    register_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(wear_router)
    app.include_router(quests_router)
    return app


def run() -> None:
    import uvicorn

    uvicorn.run(create_app(), host=Config.API_HOST, port=Config.API_PORT)


if __name__ == "__main__":
    run()
