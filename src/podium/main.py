from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from podium.config import settings
from podium.engine.errors import (
    BeltSystemDisabledError,
    ConfigurationError,
    EligibilityError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from podium.monitoring.logging_config import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    setup_logging()
    from podium.db.session import engine

    yield

    await engine.dispose()


def _register_error_handlers(app: FastAPI) -> None:
    """Map engine errors onto HTTP status codes."""

    @app.exception_handler(ValidationError)
    async def _validation(request: Request, exc: ValidationError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(EligibilityError)
    async def _eligibility(request: Request, exc: EligibilityError):
        return JSONResponse(status_code=403, content={"detail": str(exc), "code": exc.reason})

    @app.exception_handler(StateConflictError)
    async def _conflict(request: Request, exc: StateConflictError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(BeltSystemDisabledError)
    async def _disabled(request: Request, exc: BeltSystemDisabledError):
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(ConfigurationError)
    async def _configuration(request: Request, exc: ConfigurationError):
        logger.error("Configuration error", extra={"path": request.url.path, "error": str(exc)})
        return JSONResponse(status_code=500, content={"detail": str(exc)})


def create_app() -> FastAPI:
    app = FastAPI(
        title="Podium",
        description="Debate tournament progression and belt challenges",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_error_handlers(app)

    from podium.api.router import api_router

    app.include_router(api_router, prefix="/api")

    return app

