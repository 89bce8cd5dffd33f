"""Global error handlers: consistent {"detail": ...} JSON responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from playerlink.errors import (
    ConflictError,
    IdentityError,
    MissingIdentityError,
    SessionInvalidError,
    TransientStoreError,
)
from playerlink.identity.credentials import clear_session

logger = structlog.get_logger()


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": exc.errors()},
        )

    @app.exception_handler(MissingIdentityError)
    async def missing_identity_handler(_request: Request, exc: MissingIdentityError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc), "field": exc.field})

    @app.exception_handler(SessionInvalidError)
    async def session_invalid_handler(request: Request, exc: SessionInvalidError) -> JSONResponse:
        response = JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})
        clear_session(response, request)
        return response

    @app.exception_handler(ConflictError)
    async def conflict_handler(_request: Request, exc: ConflictError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc), "code": exc.code})

    @app.exception_handler(TransientStoreError)
    async def transient_handler(request: Request, exc: TransientStoreError) -> JSONResponse:
        logger.warning("transient_store_error", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": "Temporarily unavailable. Please retry."},
            headers={"Retry-After": "1"},
        )

    @app.exception_handler(IdentityError)
    async def identity_error_handler(_request: Request, exc: IdentityError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )
