"""
Authentication Middleware

Loads the operator into request state. Session handling happens in the
upstream gateway, which forwards the authenticated operator id in the
X-Operator-ID header.
"""

from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ....core.operator import DEV_OPERATOR, Operator
from ..exceptions import UnauthorizedError

OPERATOR_HEADER = "X-Operator-ID"
MAX_OPERATOR_ID_LENGTH = 128

# Paths that don't require authentication (even when AUTH_REQUIRED=true)
PUBLIC_PATHS = {
    "/health",
    "/health/live",
    "/health/ready",
    "/docs",
    "/openapi.json",
    "/redoc",
}


def is_public_path(path: str) -> bool:
    return path in PUBLIC_PATHS or path.startswith("/docs")


def is_auth_required(request: Request) -> bool:
    config = getattr(request.app.state, "config", None)
    return bool(config and config.AUTH_REQUIRED)


class AuthMiddleware(BaseHTTPMiddleware):
    """
    Middleware that:
    1. Leaves public paths alone
    2. Uses a development operator when AUTH_REQUIRED=false
    3. Otherwise loads the operator named by X-Operator-ID
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.operator = None

        if is_public_path(request.url.path):
            return await call_next(request)

        if not is_auth_required(request):
            request.state.operator = DEV_OPERATOR
            return await call_next(request)

        operator_id = (request.headers.get(OPERATOR_HEADER) or "").strip()
        if operator_id and len(operator_id) <= MAX_OPERATOR_ID_LENGTH:
            request.state.operator = Operator(id=operator_id, name=operator_id)

        # The endpoint decides whether a missing operator is an error
        return await call_next(request)


def get_current_operator(request: Request) -> Optional[Operator]:
    return getattr(request.state, "operator", None)


def require_operator(request: Request) -> Operator:
    """
    FastAPI dependency returning the authenticated operator.

    Raises:
        UnauthorizedError: No operator on the request and auth is required
    """
    operator = get_current_operator(request)
    if operator is None:
        if is_auth_required(request):
            raise UnauthorizedError(trace_id=getattr(request.state, "trace_id", None))
        return DEV_OPERATOR
    return operator
