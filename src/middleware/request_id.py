"""Log correlation — request ids for HTTP traffic, job names for scheduled runs."""
from __future__ import annotations

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# Set per request / per job run; read by the logging filter
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
job_name_var: ContextVar[str] = ContextVar("job_name", default="")

MAX_REQUEST_ID_LENGTH = 128


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id and echo it back as X-Request-ID.

    A client-supplied id is honored unless it is empty or oversized.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        rid = request.headers.get("x-request-id", "")
        if not rid or len(rid) > MAX_REQUEST_ID_LENGTH:
            rid = uuid.uuid4().hex
        token = request_id_var.set(rid)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers["X-Request-ID"] = rid
        return response
