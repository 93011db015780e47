"""
Trace ID Middleware

Adds a trace_id to every request for log and response correlation.
"""

import contextvars
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware


trace_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("trace_id", default="")


def get_trace_id() -> str:
    """
    Get the current trace ID.

    Returns the trace ID from the current request context, or a new one
    if none is set.
    """
    return trace_id_var.get() or str(uuid4())


def get_request_trace_id(request: Request) -> str:
    return getattr(request.state, "trace_id", None) or get_trace_id()


class TraceMiddleware(BaseHTTPMiddleware):
    """
    Extracts or generates the X-Trace-ID header.

    The id is stored on request.state, echoed on the response, and used
    as the trace_id of success and error envelopes.
    """

    async def dispatch(self, request: Request, call_next):
        trace_id = request.headers.get("X-Trace-ID") or str(uuid4())
        trace_id_var.set(trace_id)
        request.state.trace_id = trace_id

        response = await call_next(request)

        response.headers["X-Trace-ID"] = trace_id
        return response
