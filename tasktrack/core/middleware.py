"""
HTTP middleware: request ids and the error envelope for core exceptions.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from tasktrack.core.errors import TaskTrackError

log = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request id into the structlog context and echo it back."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


async def _handle_core_error(request: Request, exc: TaskTrackError) -> JSONResponse:
    body = exc.to_dict()
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        body["request_id"] = request_id
    if exc.status >= 500:
        log.error("request.failed", code=exc.code, path=request.url.path, error=exc.message)
    return JSONResponse(status_code=exc.status, content={"error": body})


def install_error_handlers(app: FastAPI) -> None:
    """Render every TaskTrackError as ``{"error": {code, message, status}}``."""
    app.add_exception_handler(TaskTrackError, _handle_core_error)
