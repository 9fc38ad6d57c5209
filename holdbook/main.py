"""Main application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Rate limiting
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from holdbook import __version__
from holdbook.api.v1.api import api_v1_router
from holdbook.api.v1.middleware import (
    base_error_handler,
    exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from holdbook.core import BaseError, ErrorCode, Settings, get_settings
from holdbook.deps import Container, ContainerDep, build_container
from holdbook.infrastructure import create_tables

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(settings: Optional[Settings] = None, container: Optional[Container] = None) -> FastAPI:
    """Build the API; tests pass their own container (manual clock, in-memory store)."""
    settings = settings or (container.settings if container else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        # Startup
        current = app.state.container
        if current.engine is not None:
            await create_tables(current.engine)
        current.sweeper.start()

        yield

        # Shutdown
        await current.close()

    app = FastAPI(
        title="Holdbook API",
        description="Capacity holds, bookings and ticket redemption for time-slotted experiences",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.container = container or build_container(settings)

    # Attach rate-limiter
    app.state.limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[settings.RATE_LIMIT_DEFAULT],
        enabled=settings.RATE_LIMIT_ENABLED,
    )

    @app.exception_handler(RateLimitExceeded)
    async def ratelimit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content={"errorCode": ErrorCode.VALIDATION_FAILURE.value, "errorMessage": "Too many requests"},
        )

    app.add_middleware(SlowAPIMiddleware)

    # Exception handling
    app.add_exception_handler(BaseError, base_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, exception_handler)

    # Include v1 API with all endpoints
    app.include_router(api_v1_router, prefix="/api/v1")

    # Health check
    @app.get("/healthz")
    async def healthz(container: ContainerDep):
        """Health check endpoint."""
        status = {"store": "ok", "locks": "ok"}

        try:
            async with container.uow_factory() as uow:
                await uow.capacity.get_counter("__health__", container.clock.now().date())
        except Exception:
            status["store"] = "error"

        if container.redis is not None:
            try:
                await container.redis.ping()
            except Exception:
                status["locks"] = "error"

        return status

    return app


def _default_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)
    return create_app(settings)


app = _default_app()
