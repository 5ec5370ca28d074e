"""
Per-request correlation for structured logs.

Every request gets a request id and a correlation id (taken from the
inbound headers when the caller supplies them). Both are bound to
contextvars for the lifetime of the request, echoed back as response
headers, and attached to one ``request_completed`` record.
"""
from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from mindforge.core.structured_logging import (
    correlation_id_var,
    request_id_var,
    user_id_var,
)

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "x-request-id"
CORRELATION_ID_HEADER = "x-correlation-id"


def _bind(var: ContextVar, request: Request, header: str) -> tuple:
    value = request.headers.get(header) or uuid.uuid4().hex
    return value, var.set(value)


class CorrelationMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        req_id, rid_token = _bind(request_id_var, request, REQUEST_ID_HEADER)
        corr_id, cid_token = _bind(correlation_id_var, request, CORRELATION_ID_HEADER)
        uid_token = user_id_var.set(None)

        start = time.perf_counter()
        status_code = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = req_id
            response.headers[CORRELATION_ID_HEADER] = corr_id
            return response
        finally:
            level = logging.WARNING if status_code is None or status_code >= 500 else logging.INFO
            logger.log(
                level,
                "request_completed",
                extra={
                    "http.method": request.method,
                    "http.path": request.url.path,
                    "http.status_code": status_code,
                    "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                },
            )
            user_id_var.reset(uid_token)
            correlation_id_var.reset(cid_token)
            request_id_var.reset(rid_token)
