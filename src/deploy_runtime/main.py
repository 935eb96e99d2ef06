"""Main entry point for Deploy Runtime."""

import signal
import sys
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from deploy_runtime import __version__
from deploy_runtime.api.deployer import router as deployer_router
from deploy_runtime.api.health import health_check as runtime_health_check
from deploy_runtime.api.health import router as health_router
from deploy_runtime.api.middleware import (
    setup_error_handling,
    setup_request_middleware,
)
from deploy_runtime.core.config import Settings
from deploy_runtime.deploy.local import LocalDeployer
from deploy_runtime.server.registry import ContextRegistry
from deploy_runtime.server.routing import ContextRouter
from deploy_runtime.utils.logging import setup_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = app.state.settings
    logger.info("Starting Deploy Runtime", version=__version__, deploy_dir=settings.deploy_dir)

    if settings.scan_on_startup:
        try:
            await app.state.deployer.deploy_existing()
        except OSError:
            # Don't fail startup if the scan fails
            logger.exception("Startup scan of deployment directory failed")

    yield

    logger.info("Shutting down Deploy Runtime")
    await app.state.deployer.shutdown_all()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create FastAPI application."""
    if settings is None:
        settings = Settings()

    setup_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Deploy Runtime",
        version=__version__,
        description="Hosting server with remotely driven artifact deployment",
        lifespan=lifespan,
    )

    # One registry per running server, shared by the deployer and the router
    app.state.settings = settings
    app.state.registry = ContextRegistry()
    app.state.deployer = LocalDeployer(app.state.registry, settings)

    setup_error_handling(app)
    setup_request_middleware(app, metrics_enabled=settings.metrics_enabled)

    app.include_router(health_router, prefix="/runtime", tags=["runtime"])
    app.include_router(deployer_router, prefix=settings.deployer_prefix, tags=["deployer"])

    @app.get("/health")
    async def top_level_health():
        return await runtime_health_check()

    if settings.metrics_enabled:
        app.mount("/metrics", make_asgi_app())

    # Everything else is served by deployed artifacts
    app.mount("/", ContextRouter(app.state.registry), name="contexts")

    return app


def run():
    """Run the application."""
    settings = Settings()

    def handle_sigterm(signum, frame):
        logger.info("Received SIGTERM, initiating graceful shutdown")
        sys.exit(0)

    signal.signal(signal.SIGTERM, handle_sigterm)

    config = uvicorn.Config(
        "deploy_runtime.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        workers=settings.workers,
        reload=settings.reload,
        log_config=None,  # We handle logging ourselves
        access_log=False,  # Handled by middleware
    )

    server = uvicorn.Server(config)
    server.run()


if __name__ == "__main__":
    run()
