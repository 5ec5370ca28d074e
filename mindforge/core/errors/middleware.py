"""
FastAPI exception handlers for MindforgeError and unexpected exceptions.

Looks up the registry and returns a structured JSON error response.
Unknown codes get a safe fallback.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from mindforge.core.errors import MindforgeError
from mindforge.core.errors.registry import error_registry

logger = logging.getLogger(__name__)

_GENERIC_ERROR = {
    "title": "Internal error",
    "message": "An unexpected error occurred.",
    "retryable": False,
    "user_action_required": False,
    "remediation": [],
}


async def mindforge_error_handler(request: Request, exc: MindforgeError) -> JSONResponse:
    """Convert MindforgeError into a structured JSON response."""
    entry = error_registry.get(exc.code)

    if entry is None:
        logger.error(
            "unregistered_error_code",
            extra={"error.code": exc.code, "error.message": exc.detail},
        )
        return JSONResponse(
            status_code=500,
            content={"error": {"code": exc.code, **_GENERIC_ERROR}},
        )

    # Full context goes to the log only
    log_extra = {
        "error.code": exc.code,
        "error.kind": type(exc).__name__,
        "error.message_safe": entry.safe_message,
        "error.message": exc.detail,
        "error.retryable": entry.retryable,
        "http.path": request.url.path,
        **{f"error.ctx.{k}": v for k, v in exc.context.items()},
    }

    log_fn = _severity_to_log_fn(entry.severity)
    log_fn(entry.title, extra=log_extra)

    body = {
        "code": entry.code,
        "title": entry.title,
        "message": entry.safe_message,
        "retryable": entry.retryable,
        "user_action_required": entry.user_action_required,
        "remediation": entry.remediation,
    }
    if exc.payload is not None:
        body["data"] = exc.payload

    return JSONResponse(status_code=entry.http_status, content={"error": body})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all: never leak internals to the client."""
    logger.exception(
        "unhandled_exception",
        extra={"error.kind": type(exc).__name__, "http.path": request.url.path},
    )
    return JSONResponse(
        status_code=500,
        content={"error": {"code": "MF-SYS-000", **_GENERIC_ERROR}},
    )


def _severity_to_log_fn(severity: str):
    """Map registry severity to logger method."""
    return {
        "DEBUG": logger.debug,
        "INFO": logger.info,
        "WARN": logger.warning,
        "ERROR": logger.error,
        "CRITICAL": logger.critical,
    }.get(severity, logger.error)
