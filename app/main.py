import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.dependencies import get_container
from app.core.config.config import Settings, settings
from app.core.lifecycle import Application
from app.infrastructure.server.http import HTTPServer
from app.tasks.dependencies import Dependencies
from app.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def create_app(container: Optional[Dependencies] = None, config: Settings = settings) -> FastAPI:
    """Cria a aplicação FastAPI

    Sem ``container`` as dependências são abertas no lifespan (sem broker)
    e liberadas no shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting application...")
        owned = container is None
        app.state.container = container or await Dependencies.create(config, with_broker=False)
        logger.info("Application started successfully")

        yield

        logger.info("Shutting down application...")
        if owned:
            await app.state.container.cleanup()
        logger.info("Application shut down")

    app = FastAPI(
        title=config.app_name,
        version=config.app_version,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.http_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check(container: Dependencies = Depends(get_container)):
        """Health check endpoint"""
        redis_ok = await container.redis_client.ping()
        db_ok = await container.db.ping()
        return {
            "status": "healthy" if redis_ok and db_ok else "degraded",
            "redis": "connected" if redis_ok else "disconnected",
            "database": "connected" if db_ok else "disconnected",
        }

    return app


async def main() -> int:
    app_logger = setup_logging(settings)

    http_server = HTTPServer(create_app(), settings.http_host, settings.http_port, app_logger)
    application = Application(
        app_logger,
        name=f"{settings.app_name}-api",
        version=settings.app_version,
        metadata={"environment": settings.environment},
        stop_timeout=settings.app_stop_timeout,
        servers=[http_server],
    )
    try:
        await application.run()
    except Exception as e:
        logger.error(f"API process failed: {e}", exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
