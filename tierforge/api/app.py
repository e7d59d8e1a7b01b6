"""FastAPI application factory for tierforge.

Usage::

    from tierforge.api.app import create_app

    app = create_app(orchestrator=orchestrator, compiled=compiled)

The factory is used both by ``tierforge serve`` and by unit tests.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tierforge.api.routes import router
from tierforge.api.schemas import ErrorResponse
from tierforge.engine.orchestrator import CompiledConfiguration, Orchestrator
from tierforge.errors import AuthorizationError, ConfigurationError, ProviderError, StateLockError
from tierforge.models.config import TierforgeConfig

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def create_app(
    orchestrator: Orchestrator,
    compiled: CompiledConfiguration | None = None,
    config: TierforgeConfig | None = None,
) -> FastAPI:
    """Create and configure the tierforge FastAPI application.

    Args:
        orchestrator: Orchestrator bound to the provider and state store.
        compiled:     Declarations loaded at startup; enables ``/outputs``.
        config:       TierforgeConfig, kept for handlers that need it.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from tierforge import __version__

    app = FastAPI(
        title="tierforge",
        summary="Dependency-ordered infrastructure provisioning API",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        openapi_url="/api/v1/openapi.json",
    )

    app.state.orchestrator = orchestrator
    app.state.compiled = compiled
    app.state.config = config
    app.state.provider_name = orchestrator.provider.name

    app.include_router(router, prefix=_API_PREFIX)

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = exc.errors()
        first_msg = str(errors[0].get("msg", "")) if errors else ""
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="INVALID_REQUEST", detail=first_msg).model_dump(),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error="NOT_FOUND" if exc.status_code == 404 else "HTTP_ERROR",
                detail=str(exc.detail),
            ).model_dump(),
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_exception_handler(_request: Request, exc: ConfigurationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content=ErrorResponse(error="INVALID_CONFIGURATION", detail=str(exc)).model_dump(),
        )

    @app.exception_handler(StateLockError)
    async def lock_exception_handler(_request: Request, exc: StateLockError) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content=ErrorResponse(error="STATE_LOCKED", detail=str(exc)).model_dump(),
        )

    @app.exception_handler(ProviderError)
    async def provider_exception_handler(request: Request, exc: ProviderError) -> JSONResponse:
        _log.warning("provider_error", path=str(request.url.path), error=str(exc))
        code = "PROVIDER_UNAUTHORIZED" if isinstance(exc, AuthorizationError) else "PROVIDER_ERROR"
        return JSONResponse(
            status_code=502,
            content=ErrorResponse(error=code, detail=str(exc)).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app
