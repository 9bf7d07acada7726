"""Global error handlers mapping validation and domain failures to JSON responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from engagement.domain.errors import DataIntegrityError, EngagementError

logger = logging.getLogger(__name__)


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        payload = {"detail": "invalid_payload", "errors": jsonable_errors(exc)}
        return JSONResponse(status_code=400, content=payload)

    @app.exception_handler(DataIntegrityError)
    async def integrity_exc_handler(request: Request, exc: DataIntegrityError):  # type: ignore[override]
        logger.warning("api.data_integrity", extra={"reason": exc.reason, "path": request.url.path})
        return JSONResponse(status_code=409, content={"detail": exc.reason})

    @app.exception_handler(EngagementError)
    async def engagement_exc_handler(request: Request, exc: EngagementError):  # type: ignore[override]
        logger.error("api.engagement_error", extra={"reason": exc.reason, "path": request.url.path})
        return JSONResponse(status_code=500, content={"detail": exc.reason})


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, object]]:
    return [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": str(error.get("msg", "")), "type": error.get("type")}
        for error in exc.errors()
    ]
