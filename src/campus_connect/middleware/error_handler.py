"""JSON error responses for every failure path.

Services raise ``CampusConnectError`` subclasses and never import FastAPI;
the handlers here turn them into ``{"detail": ...}`` bodies with the
exception's ``status_code``. Anything unexpected is logged with its
traceback and returned as a generic 500.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from campus_connect.errors import CampusConnectError

logger = structlog.get_logger(__name__)


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """Pydantic error entries with ``ctx`` values (often exception objects) stringified."""
    cleaned: list[dict[str, Any]] = []
    for entry in exc.errors():
        entry = dict(entry)
        if "ctx" in entry:
            entry["ctx"] = {key: str(value) for key, value in entry["ctx"].items()}
        cleaned.append(entry)
    return cleaned


async def _http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code, headers=exc.headers)


async def _invalid_request(_request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse({"detail": "Validation error", "errors": jsonable_errors(exc)}, status_code=422)


async def _domain_error(request: Request, exc: CampusConnectError) -> JSONResponse:
    logger.info(
        "domain_error",
        path=request.url.path,
        error=type(exc).__name__,
        status_code=exc.status_code,
        detail=exc.message,
    )
    return JSONResponse({"detail": exc.message}, status_code=exc.status_code)


async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", path=request.url.path, method=request.method, exc_info=exc)
    return JSONResponse({"detail": "Internal server error"}, status_code=500)


def setup_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, _http_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _invalid_request)  # type: ignore[arg-type]
    app.add_exception_handler(CampusConnectError, _domain_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled)
