from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
import uvicorn
from fastapi import FastAPI

from ratewarden.api.exception_handlers import setup_exception_handlers
from ratewarden.api.middleware import RequestContextMiddleware
from ratewarden.api.routes import router
from ratewarden.config import Settings, get_settings
from ratewarden.core.limiter import RateLimiter
from ratewarden.core.logging import setup_logging
from ratewarden.core.storage.redis import RedisBackend

logger = structlog.get_logger()


def create_app(
    limiter: RateLimiter | None = None,
    settings: Settings | None = None,
    backend_factory: Callable[[str], RedisBackend] = RedisBackend.from_url,
) -> FastAPI:
    """
    Build the HTTP application.

    With no limiter given, the lifespan handler connects to Redis through
    `backend_factory` and builds one from settings. The connection is
    closed on shutdown and when startup fails. A given limiter is used as
    is and left open.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if limiter is not None:
            app.state.limiter = limiter
            yield
            return

        # 1. Initialize Infrastructure
        backend = backend_factory(settings.redis_url)
        try:
            await backend.ping()
            logger.info("redis_connected", redis_url=settings.redis_url)

            # 2. Register the procedure and load strategies
            app.state.limiter = await RateLimiter.create(backend, settings.strategies)
            logger.info("ratewarden_started", strategies=list(settings.strategies))
            yield
        finally:
            # 3. Cleanup
            await backend.close()
            logger.info("ratewarden_stopped")

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_middleware(RequestContextMiddleware)
    setup_exception_handlers(app)
    app.include_router(router)
    return app


def run() -> None:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_json)
    uvicorn.run(create_app(settings=settings), host="0.0.0.0", port=8080, log_config=None)
