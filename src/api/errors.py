"""API error type and the handlers that render it."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .schemas import ErrorBody, ErrorResponse

LOGGER = logging.getLogger("convrec.api")


class ApiError(Exception):
    def __init__(self, message: str, status: int = 500) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


def _render(request: Request, message: str, status: int) -> JSONResponse:
    body = ErrorResponse(
        error=ErrorBody(
            message=message,
            status=status,
            timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            path=request.url.path,
        )
    )
    return JSONResponse(status_code=status, content=body.model_dump())


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        LOGGER.error("Error: %s - Path: %s - Status: %s", exc.message, request.url.path, exc.status)
        if exc.status >= 500:
            LOGGER.error("Server error", exc_info=exc)
        return _render(request, exc.message, exc.status)

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        missing = [
            ".".join(str(part) for part in err.get("loc", ()) if part != "body")
            for err in exc.errors()
        ]
        LOGGER.warning("Invalid request on %s: %s", request.url.path, missing)
        message = "Missing required audio data" if request.url.path.endswith("/audio-upload") else "Invalid request"
        return _render(request, message, 400)

    @app.exception_handler(Exception)
    async def unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
        LOGGER.error("Unhandled error on %s", request.url.path, exc_info=exc)
        return _render(request, str(exc) or "Internal Server Error", 500)
